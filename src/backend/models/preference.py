"""
Pairwise preference model.

Rows are stored in canonical order (``alpha_entity_id < beta_entity_id``);
``value`` is the flow from beta to alpha, so values above 0.5 favour alpha.
"""

from datetime import datetime

from sqlalchemy import (
    CheckConstraint,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base
from db.types import UTCDateTime


class Preference(Base):
    """One participant's opinion about one entity pair (last write wins)."""

    __tablename__ = "preferences"
    __table_args__ = (
        UniqueConstraint(
            "scope_id",
            "participant_id",
            "alpha_entity_id",
            "beta_entity_id",
            name="uq_preferences_scope_participant_pair",
        ),
        CheckConstraint("alpha_entity_id < beta_entity_id", name="ck_preferences_canonical"),
        CheckConstraint("value >= 0 AND value <= 1", name="ck_preferences_value_range"),
        Index("ix_preferences_scope", "scope_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    scope_id: Mapped[str] = mapped_column(String(64), ForeignKey("scopes.id", ondelete="CASCADE"))
    participant_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("participants.id", ondelete="CASCADE")
    )
    alpha_entity_id: Mapped[int] = mapped_column(Integer, ForeignKey("entities.id", ondelete="CASCADE"))
    beta_entity_id: Mapped[int] = mapped_column(Integer, ForeignKey("entities.id", ondelete="CASCADE"))
    value: Mapped[float] = mapped_column(Float)

    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        server_default=func.now(),
        onupdate=func.now(),
    )
