"""
Claim repository for database operations.

Resolution is a compare-and-set: ``mark_resolved`` only touches rows whose
``resolved_at`` is still NULL and reports whether it won.
"""

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from models.claim import Claim, ClaimKind
from models.poll import Poll


class ClaimRepository:
    """Repository for claim, challenge and purchase database operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    def _get_rowcount(self, result: Any) -> int:
        """Safely get rowcount from result."""
        return getattr(result, "rowcount", 0) or 0

    async def get_by_id(self, claim_id: str) -> Optional[Claim]:
        result = await self.db.execute(select(Claim).where(Claim.id == claim_id))
        return result.scalar_one_or_none()

    async def create(
        self,
        scope_id: str,
        kind: ClaimKind,
        initiator_id: str,
        target: str,
        requested_value: float,
        poll_id: str,
        opened_at: datetime,
        details: Optional[dict] = None,
    ) -> Claim:
        claim = Claim(
            scope_id=scope_id,
            kind=kind.value,
            initiator_id=initiator_id,
            target=target,
            requested_value=requested_value,
            poll_id=poll_id,
            opened_at=opened_at,
            details=details or {},
        )
        self.db.add(claim)
        await self.db.flush()
        return claim

    async def find_open(
        self, scope_id: str, kind: ClaimKind, initiator_id: str, target: str
    ) -> Optional[Claim]:
        """The open request of ``kind`` between initiator and target, if any."""
        result = await self.db.execute(
            select(Claim)
            .where(
                and_(
                    Claim.scope_id == scope_id,
                    Claim.kind == kind.value,
                    Claim.initiator_id == initiator_id,
                    Claim.target == target,
                    Claim.resolved_at.is_(None),
                )
            )
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def latest_unrejected_claim(
        self,
        entity_id: int,
        before: datetime,
        exclude_id: Optional[str] = None,
    ) -> Optional[Claim]:
        """
        Most recent claim on an entity opened strictly before ``before``
        that is open or was upheld.

        Its ``opened_at`` is the point from which the entity's value
        accumulates again.
        """
        query = select(Claim).where(
            and_(
                Claim.kind == ClaimKind.CLAIM.value,
                Claim.target == str(entity_id),
                Claim.opened_at < before,
                or_(Claim.valid.is_(None), Claim.valid.is_(True)),
            )
        )
        if exclude_id is not None:
            query = query.where(Claim.id != exclude_id)
        result = await self.db.execute(query.order_by(Claim.opened_at.desc()).limit(1))
        return result.scalar_one_or_none()

    async def resolvable_ids(
        self, scope_id: str, now: datetime, kind: Optional[ClaimKind] = None
    ) -> list[str]:
        """Ids of open requests whose poll window has closed by ``now``."""
        query = (
            select(Claim.id)
            .join(Poll, Claim.poll_id == Poll.id)
            .where(
                and_(
                    Claim.scope_id == scope_id,
                    Claim.resolved_at.is_(None),
                    Poll.end_time <= now,
                )
            )
        )
        if kind is not None:
            query = query.where(Claim.kind == kind.value)
        result = await self.db.execute(query.order_by(Claim.opened_at))
        return [row[0] for row in result.all()]

    async def mark_resolved(
        self,
        claim_id: str,
        resolved_at: datetime,
        valid: bool,
        value: float,
    ) -> bool:
        """
        Transition an open request to resolved.

        Returns False when another writer resolved it first.
        """
        result = await self.db.execute(
            update(Claim)
            .where(and_(Claim.id == claim_id, Claim.resolved_at.is_(None)))
            .values(resolved_at=resolved_at, valid=valid, value=value)
        )
        return self._get_rowcount(result) == 1

    async def mark_fulfilled(self, claim_id: str, fulfilled_by: str, fulfilled_at: datetime) -> bool:
        """Mark a valid purchase as handed over; False if not eligible or already done."""
        result = await self.db.execute(
            update(Claim)
            .where(
                and_(
                    Claim.id == claim_id,
                    Claim.kind == ClaimKind.BUY.value,
                    Claim.valid.is_(True),
                    Claim.fulfilled_at.is_(None),
                )
            )
            .values(fulfilled_at=fulfilled_at, fulfilled_by=fulfilled_by)
        )
        return self._get_rowcount(result) == 1

    async def unfulfilled_purchases(self, scope_id: str) -> list[Claim]:
        result = await self.db.execute(
            select(Claim)
            .where(
                and_(
                    Claim.scope_id == scope_id,
                    Claim.kind == ClaimKind.BUY.value,
                    Claim.valid.is_(True),
                    Claim.fulfilled_at.is_(None),
                )
            )
            .order_by(Claim.resolved_at)
        )
        return list(result.scalars().all())

    async def sum_valid_claims(
        self, participant_id: str, start: datetime, end: datetime, include_end: bool = False
    ) -> float:
        """Value of a participant's upheld chore claims opened within ``[start, end)``."""
        upper = Claim.opened_at <= end if include_end else Claim.opened_at < end
        result = await self.db.execute(
            select(func.coalesce(func.sum(Claim.value), 0.0)).where(
                and_(
                    Claim.kind == ClaimKind.CLAIM.value,
                    Claim.initiator_id == participant_id,
                    Claim.valid.is_(True),
                    Claim.opened_at >= start,
                    upper,
                )
            )
        )
        return float(result.scalar() or 0.0)
