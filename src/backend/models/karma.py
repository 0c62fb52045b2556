"""Karma nomination model: one participant thanking another."""

from datetime import datetime

from sqlalchemy import CheckConstraint, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base
from db.types import UTCDateTime


class KarmaNomination(Base):
    """Directed appreciation edge from ``giver_id`` to ``receiver_id``."""

    __tablename__ = "karma_nominations"
    __table_args__ = (
        CheckConstraint("giver_id <> receiver_id", name="ck_karma_not_self"),
        Index("ix_karma_scope_given", "scope_id", "given_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    scope_id: Mapped[str] = mapped_column(String(64), ForeignKey("scopes.id", ondelete="CASCADE"))
    giver_id: Mapped[str] = mapped_column(String(64))
    receiver_id: Mapped[str] = mapped_column(String(64))
    given_at: Mapped[datetime] = mapped_column(UTCDateTime())
