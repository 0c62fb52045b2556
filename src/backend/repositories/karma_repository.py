"""
Karma repository for database operations.
"""

from datetime import datetime

from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from models.karma import KarmaNomination


class KarmaRepository:
    """Repository for karma nomination database operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def give(
        self, scope_id: str, giver_id: str, receiver_id: str, given_at: datetime
    ) -> KarmaNomination:
        nomination = KarmaNomination(
            scope_id=scope_id,
            giver_id=giver_id,
            receiver_id=receiver_id,
            given_at=given_at,
        )
        self.db.add(nomination)
        await self.db.flush()
        return nomination

    async def nominations(
        self, scope_id: str, start: datetime, end: datetime
    ) -> list[tuple[str, str]]:
        """``(giver, receiver)`` pairs given within ``[start, end)``."""
        result = await self.db.execute(
            select(KarmaNomination.giver_id, KarmaNomination.receiver_id)
            .where(
                and_(
                    KarmaNomination.scope_id == scope_id,
                    KarmaNomination.given_at >= start,
                    KarmaNomination.given_at < end,
                )
            )
            .order_by(KarmaNomination.id)
        )
        return [(row[0], row[1]) for row in result.all()]
