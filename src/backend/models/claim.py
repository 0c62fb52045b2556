"""
Claim model.

One table backs every poll-gated request: chore claims, heart challenges
and purchases. A row is OPEN while ``resolved_at`` is NULL and becomes
immutable once it is set.
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Float,
    ForeignKey,
    Index,
    String,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from db.base import Base
from db.types import UTCDateTime


class ClaimKind(str, Enum):
    """Type of poll-gated request."""

    CLAIM = "claim"  # Participant completed an entity; target is the entity id
    CHALLENGE = "challenge"  # Dispute against another participant; target is their id
    BUY = "buy"  # Purchase from the scope funds; target is the item name


class ClaimStatus(str, Enum):
    """Lifecycle status derived from ``resolved_at`` and ``valid``."""

    OPEN = "open"
    VALID = "valid"
    INVALID = "invalid"


class Claim(Base):
    """Poll-backed request awaiting (or holding) a quorum decision."""

    __tablename__ = "claims"
    __table_args__ = (
        CheckConstraint("initiator_id <> target", name="ck_claims_not_self"),
        Index("ix_claims_scope_kind_resolved", "scope_id", "kind", "resolved_at"),
        Index("ix_claims_kind_target_opened", "kind", "target", "opened_at"),
        Index("ix_claims_initiator_opened", "initiator_id", "opened_at"),
    )

    id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        primary_key=True,
        default=lambda: str(uuid4()),
    )
    scope_id: Mapped[str] = mapped_column(String(64), ForeignKey("scopes.id", ondelete="CASCADE"))
    kind: Mapped[str] = mapped_column(String(20))

    initiator_id: Mapped[str] = mapped_column(String(64))
    target: Mapped[str] = mapped_column(String(255))

    # Value captured at open; ``value`` is the authoritative amount fixed at resolution
    requested_value: Mapped[float] = mapped_column(Float)
    value: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    poll_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("polls.id", ondelete="RESTRICT"),
        unique=True,
    )

    opened_at: Mapped[datetime] = mapped_column(UTCDateTime())
    resolved_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)
    valid: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)

    # Purchases only: who handed the item over, and when
    fulfilled_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)
    fulfilled_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    # Free-form context (circumstance, quantity, ...)
    details: Mapped[dict] = mapped_column(JSON, default=dict)

    poll = relationship("Poll", lazy="joined")

    @property
    def status(self) -> ClaimStatus:
        if self.resolved_at is None:
            return ClaimStatus.OPEN
        return ClaimStatus.VALID if self.valid else ClaimStatus.INVALID
