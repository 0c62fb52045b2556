"""
Ranked entity model (chores and other shared items).

Identity is the ``(scope_id, name)`` pair; deleting an entity only clears
``active`` so historical preferences and value events stay attached.
"""

from datetime import datetime

from sqlalchemy import JSON, Boolean, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base
from db.types import UTCDateTime


class RankedEntity(Base):
    """Scoped item whose priority is decided by participant preferences."""

    __tablename__ = "entities"
    __table_args__ = (UniqueConstraint("scope_id", "name", name="uq_entities_scope_name"),)

    # Integer ids give the ranking matrix its deterministic ordering
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    scope_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("scopes.id", ondelete="CASCADE"),
        index=True,
    )
    name: Mapped[str] = mapped_column(String(255))
    active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    attributes: Mapped[dict] = mapped_column(JSON, default=dict)

    # Accrual never credits value emitted before this instant
    created_at: Mapped[datetime] = mapped_column(UTCDateTime())
