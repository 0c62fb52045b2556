"""
Roster repository: participants and breaks.

This is the default SQL-backed roster provider. Activation helpers mirror
the platform events that add, remove and exempt members.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import and_, delete, exists, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from models.participant import Participant, ParticipantBreak


def _not_exempt(now: datetime):
    return or_(Participant.exempt_at.is_(None), Participant.exempt_at > now)


class RosterRepository:
    """Repository for roster database operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_participant(self, participant_id: str) -> Optional[Participant]:
        result = await self.db.execute(select(Participant).where(Participant.id == participant_id))
        return result.scalar_one_or_none()

    async def participants(self, scope_id: str, now: datetime) -> list[Participant]:
        """Participants active at ``now`` (exempt ones included)."""
        result = await self.db.execute(
            select(Participant)
            .where(
                and_(
                    Participant.scope_id == scope_id,
                    Participant.active_at <= now,
                )
            )
            .order_by(Participant.id)
        )
        return list(result.scalars().all())

    async def voting_participants(self, scope_id: str, now: datetime) -> list[Participant]:
        """Participants active and not exempt at ``now``."""
        result = await self.db.execute(
            select(Participant)
            .where(
                and_(
                    Participant.scope_id == scope_id,
                    Participant.active_at <= now,
                    _not_exempt(now),
                )
            )
            .order_by(Participant.id)
        )
        return list(result.scalars().all())

    async def eligible_participants(self, scope_id: str, now: datetime) -> list[Participant]:
        """Voting participants who are not on a break covering ``now``."""
        on_break = exists().where(
            and_(
                ParticipantBreak.participant_id == Participant.id,
                ParticipantBreak.start_at <= now,
                ParticipantBreak.end_at > now,
            )
        )
        result = await self.db.execute(
            select(Participant)
            .where(
                and_(
                    Participant.scope_id == scope_id,
                    Participant.active_at <= now,
                    _not_exempt(now),
                    ~on_break,
                )
            )
            .order_by(Participant.id)
        )
        return list(result.scalars().all())

    async def activate(self, scope_id: str, participant_id: str, active_at: datetime) -> Participant:
        """Activate a participant; no-op if already active or exempt."""
        participant = await self.get_participant(participant_id)
        if participant is None:
            participant = Participant(id=participant_id, scope_id=scope_id, active_at=active_at)
            self.db.add(participant)
        elif participant.active_at is None and participant.exempt_at is None:
            participant.active_at = active_at
        await self.db.flush()
        return participant

    async def deactivate(self, participant_id: str) -> bool:
        participant = await self.get_participant(participant_id)
        if participant is None:
            return False
        participant.active_at = None
        await self.db.flush()
        return True

    async def exempt(self, participant_id: str, exempt_at: datetime) -> bool:
        """Exempt a participant; keeps an earlier exemption if one exists."""
        participant = await self.get_participant(participant_id)
        if participant is None:
            return False
        if participant.exempt_at is not None and participant.exempt_at <= exempt_at:
            return False
        participant.exempt_at = exempt_at
        await self.db.flush()
        return True

    async def unexempt(self, participant_id: str, active_at: datetime) -> bool:
        participant = await self.get_participant(participant_id)
        if participant is None:
            return False
        participant.exempt_at = None
        participant.active_at = active_at
        await self.db.flush()
        return True

    # ========================================================================
    # Breaks
    # ========================================================================

    async def add_break(
        self, participant_id: str, start_at: datetime, end_at: datetime
    ) -> ParticipantBreak:
        brk = ParticipantBreak(participant_id=participant_id, start_at=start_at, end_at=end_at)
        self.db.add(brk)
        await self.db.flush()
        return brk

    async def delete_break(self, break_id: int) -> bool:
        result = await self.db.execute(delete(ParticipantBreak).where(ParticipantBreak.id == break_id))
        return (getattr(result, "rowcount", 0) or 0) > 0

    async def breaks(
        self, participant_id: str, start: datetime, end: datetime
    ) -> list[tuple[datetime, datetime]]:
        """Break intervals overlapping ``[start, end)``."""
        result = await self.db.execute(
            select(ParticipantBreak.start_at, ParticipantBreak.end_at).where(
                and_(
                    ParticipantBreak.participant_id == participant_id,
                    ParticipantBreak.start_at < end,
                    ParticipantBreak.end_at > start,
                )
            )
        )
        return [(row.start_at, row.end_at) for row in result.all()]
