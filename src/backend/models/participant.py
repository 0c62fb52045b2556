"""
Roster models: participants and their breaks.

A participant is active from ``active_at`` (inclusive) and counts towards
quorums until ``exempt_at``. Breaks remove them from accrual eligibility
and reduce their quota for the month.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import CheckConstraint, ForeignKey, Index, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base
from db.types import UTCDateTime


class Participant(Base):
    """Member of a scope."""

    __tablename__ = "participants"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    scope_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("scopes.id", ondelete="CASCADE"),
        index=True,
    )

    # NULL means deactivated
    active_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)
    # Exempt participants neither vote nor accrue obligations
    exempt_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        server_default=func.now(),
    )

    def is_active(self, now: datetime) -> bool:
        return self.active_at is not None and self.active_at <= now

    def is_exempt(self, now: datetime) -> bool:
        return self.exempt_at is not None and self.exempt_at <= now


class ParticipantBreak(Base):
    """Half-open interval ``[start_at, end_at)`` during which a participant is away."""

    __tablename__ = "participant_breaks"
    __table_args__ = (
        CheckConstraint("end_at > start_at", name="ck_participant_breaks_order"),
        Index("ix_participant_breaks_participant_start", "participant_id", "start_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    participant_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("participants.id", ondelete="CASCADE"),
    )
    start_at: Mapped[datetime] = mapped_column(UTCDateTime())
    end_at: Mapped[datetime] = mapped_column(UTCDateTime())
