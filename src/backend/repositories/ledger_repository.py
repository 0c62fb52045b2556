"""
Ledger repository for database operations.

Append-only: events are inserted, summed and never changed.
"""

from datetime import datetime
from typing import Optional, Sequence

import structlog
from sqlalchemy import and_, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from models.ledger import LedgerCategory, LedgerEvent, LedgerKind

logger = structlog.get_logger(__name__)


class LedgerRepository:
    """Repository for ledger event database operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    @staticmethod
    def _build(
        scope_id: str,
        participant_id: str,
        ledger: LedgerKind,
        category: LedgerCategory,
        amount: float,
        occurred_at: datetime,
        period_key: Optional[str] = None,
        reference_id: Optional[str] = None,
        details: Optional[dict] = None,
    ) -> LedgerEvent:
        return LedgerEvent(
            scope_id=scope_id,
            participant_id=participant_id,
            ledger=ledger.value,
            category=category.value,
            amount=amount,
            occurred_at=occurred_at,
            period_key=period_key,
            reference_id=reference_id,
            details=details or {},
        )

    async def append(self, **kwargs) -> LedgerEvent:
        event = self._build(**kwargs)
        self.db.add(event)
        await self.db.flush()
        return event

    async def append_once(self, **kwargs) -> Optional[LedgerEvent]:
        """
        Append an event that must exist at most once per period.

        Returns None (and leaves the transaction usable) if an event for the
        same participant, ledger, category and period is already stored.
        """
        assert kwargs.get("period_key"), "append_once requires a period_key"
        event = self._build(**kwargs)
        try:
            async with self.db.begin_nested():
                self.db.add(event)
        except IntegrityError:
            logger.debug(
                "ledger_append_duplicate",
                participant_id=kwargs["participant_id"],
                category=kwargs["category"].value,
                period_key=kwargs["period_key"],
            )
            return None
        return event

    async def balance(self, participant_id: str, ledger: LedgerKind, at: datetime) -> float:
        """Sum of a participant's events on ``ledger`` with timestamp <= ``at``."""
        result = await self.db.execute(
            select(func.coalesce(func.sum(LedgerEvent.amount), 0.0)).where(
                and_(
                    LedgerEvent.participant_id == participant_id,
                    LedgerEvent.ledger == ledger.value,
                    LedgerEvent.occurred_at <= at,
                )
            )
        )
        return float(result.scalar() or 0.0)

    async def balance_between(
        self,
        participant_id: str,
        ledger: LedgerKind,
        start: datetime,
        end: datetime,
        include_end: bool = False,
    ) -> float:
        """Sum of a participant's events on ``ledger`` within ``[start, end)`` (or ``[start, end]``)."""
        upper = LedgerEvent.occurred_at <= end if include_end else LedgerEvent.occurred_at < end
        result = await self.db.execute(
            select(func.coalesce(func.sum(LedgerEvent.amount), 0.0)).where(
                and_(
                    LedgerEvent.participant_id == participant_id,
                    LedgerEvent.ledger == ledger.value,
                    LedgerEvent.occurred_at >= start,
                    upper,
                )
            )
        )
        return float(result.scalar() or 0.0)

    async def scope_balance(self, scope_id: str, ledger: LedgerKind, at: datetime) -> float:
        """Sum of every event of a scope on ``ledger`` with timestamp <= ``at``."""
        result = await self.db.execute(
            select(func.coalesce(func.sum(LedgerEvent.amount), 0.0)).where(
                and_(
                    LedgerEvent.scope_id == scope_id,
                    LedgerEvent.ledger == ledger.value,
                    LedgerEvent.occurred_at <= at,
                )
            )
        )
        return float(result.scalar() or 0.0)

    async def balances(
        self, participant_ids: Sequence[str], ledger: LedgerKind, at: datetime
    ) -> dict[str, float]:
        """Per-participant sums on ``ledger`` up to ``at``; participants without events are omitted."""
        if not participant_ids:
            return {}
        result = await self.db.execute(
            select(LedgerEvent.participant_id, func.sum(LedgerEvent.amount))
            .where(
                and_(
                    LedgerEvent.participant_id.in_(participant_ids),
                    LedgerEvent.ledger == ledger.value,
                    LedgerEvent.occurred_at <= at,
                )
            )
            .group_by(LedgerEvent.participant_id)
        )
        return {participant_id: float(amount) for participant_id, amount in result.all()}

    async def has_events(
        self, participant_id: str, ledger: LedgerKind, at: Optional[datetime] = None
    ) -> bool:
        query = select(func.count(LedgerEvent.id)).where(
            and_(
                LedgerEvent.participant_id == participant_id,
                LedgerEvent.ledger == ledger.value,
            )
        )
        if at is not None:
            query = query.where(LedgerEvent.occurred_at <= at)
        result = await self.db.execute(query)
        return (result.scalar() or 0) > 0

    async def has_period_event(
        self,
        participant_id: str,
        ledger: LedgerKind,
        category: LedgerCategory,
        period_key: str,
    ) -> bool:
        result = await self.db.execute(
            select(func.count(LedgerEvent.id)).where(
                and_(
                    LedgerEvent.participant_id == participant_id,
                    LedgerEvent.ledger == ledger.value,
                    LedgerEvent.category == category.value,
                    LedgerEvent.period_key == period_key,
                )
            )
        )
        return (result.scalar() or 0) > 0

    async def has_scope_period_event(
        self, scope_id: str, ledger: LedgerKind, category: LedgerCategory, period_key: str
    ) -> bool:
        result = await self.db.execute(
            select(func.count(LedgerEvent.id)).where(
                and_(
                    LedgerEvent.scope_id == scope_id,
                    LedgerEvent.ledger == ledger.value,
                    LedgerEvent.category == category.value,
                    LedgerEvent.period_key == period_key,
                )
            )
        )
        return (result.scalar() or 0) > 0
