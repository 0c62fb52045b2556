"""
Value event model.

Append-only record of value emitted to an entity. Every row of one
emission shares ``snapshot_id`` and carries the ranking weight and
participant count it was computed from, for audit.
"""

from datetime import datetime

from sqlalchemy import Float, ForeignKey, Index, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base
from db.types import UTCDateTime


class ValueEvent(Base):
    """Claimable value credited to an entity at ``valued_at``."""

    __tablename__ = "value_events"
    __table_args__ = (
        Index("ix_value_events_entity_valued", "entity_id", "valued_at"),
        Index("ix_value_events_scope_valued", "scope_id", "valued_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    scope_id: Mapped[str] = mapped_column(String(64), ForeignKey("scopes.id", ondelete="CASCADE"))
    entity_id: Mapped[int] = mapped_column(Integer, ForeignKey("entities.id", ondelete="CASCADE"))

    valued_at: Mapped[datetime] = mapped_column(UTCDateTime())
    amount: Mapped[float] = mapped_column(Float)

    # Ranking snapshot reference
    snapshot_id: Mapped[str] = mapped_column(Uuid(as_uuid=False), index=True)
    ranking: Mapped[float] = mapped_column(Float)
    participant_count: Mapped[int] = mapped_column(Integer)
