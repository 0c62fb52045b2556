"""
Value event repository.

Value events are append-only; this repository never updates or deletes.
"""

from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from models.value_event import ValueEvent


class ValueEventRepository:
    """Repository for value event database operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def add_many(self, events: Iterable[ValueEvent]) -> list[ValueEvent]:
        events = list(events)
        self.db.add_all(events)
        await self.db.flush()
        return events

    async def sum_between(
        self, entity_id: int, start_exclusive: datetime, end_inclusive: datetime
    ) -> float:
        """Total value credited to an entity within ``(start, end]``."""
        result = await self.db.execute(
            select(func.coalesce(func.sum(ValueEvent.amount), 0.0)).where(
                and_(
                    ValueEvent.entity_id == entity_id,
                    ValueEvent.valued_at > start_exclusive,
                    ValueEvent.valued_at <= end_inclusive,
                )
            )
        )
        return float(result.scalar() or 0.0)

    async def last_valued_at(self, scope_id: str) -> Optional[datetime]:
        """Timestamp of the scope's most recent emission, if any."""
        result = await self.db.execute(
            select(func.max(ValueEvent.valued_at)).where(ValueEvent.scope_id == scope_id)
        )
        return result.scalar()
