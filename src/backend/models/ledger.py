"""
Ledger event model.

Append-only signed entries. Balances are always derived by summing
events up to a point in time and are never stored.

Three ledgers share the table:
- hearts: per-participant reputation
- points: per-participant claim-value adjustments (gifts)
- funds: the scope's shared purchase account
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import uuid4

from sqlalchemy import JSON, Float, ForeignKey, Index, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base
from db.types import UTCDateTime


class LedgerKind(str, Enum):
    """Which balance an event contributes to."""

    HEARTS = "hearts"
    POINTS = "points"
    FUNDS = "funds"


class LedgerCategory(str, Enum):
    """Why an event was appended."""

    BASELINE = "baseline"
    REGENERATION = "regeneration"
    PENALTY = "penalty"
    CHALLENGE = "challenge"
    KARMA = "karma"
    GIFT = "gift"
    DEPOSIT = "deposit"
    PURCHASE = "purchase"
    REFUND = "refund"


# Sentinel period for once-ever events
BASELINE_PERIOD = "baseline"


class LedgerEvent(Base):
    """
    Immutable, timestamped, signed entry attributed to a participant.

    ``period_key`` is set only for at-most-once operations (baseline,
    regeneration, penalty, karma); the unique constraint turns a duplicate
    append into an IntegrityError instead of a double credit.
    """

    __tablename__ = "ledger_events"
    __table_args__ = (
        UniqueConstraint(
            "participant_id",
            "ledger",
            "category",
            "period_key",
            name="uq_ledger_events_once_per_period",
        ),
        Index("ix_ledger_events_participant_ledger_time", "participant_id", "ledger", "occurred_at"),
        Index("ix_ledger_events_scope_ledger_time", "scope_id", "ledger", "occurred_at"),
    )

    id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        primary_key=True,
        default=lambda: str(uuid4()),
    )
    scope_id: Mapped[str] = mapped_column(String(64), ForeignKey("scopes.id", ondelete="CASCADE"))
    participant_id: Mapped[str] = mapped_column(String(64))

    ledger: Mapped[str] = mapped_column(String(20))
    category: Mapped[str] = mapped_column(String(20))
    amount: Mapped[float] = mapped_column(Float)  # Positive credit, negative debit
    occurred_at: Mapped[datetime] = mapped_column(UTCDateTime())

    period_key: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    reference_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    details: Mapped[dict] = mapped_column(JSON, default=dict)
