"""
Poll model.

A poll is only a voting window; what is being decided lives on the claim
that references it. Polls are immutable once created.
"""

from datetime import datetime
from uuid import uuid4

from sqlalchemy import CheckConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from db.base import Base
from db.types import UTCDateTime


class Poll(Base):
    """Time-boxed yes/no vote."""

    __tablename__ = "polls"
    __table_args__ = (CheckConstraint("end_time >= start_time", name="ck_polls_window"),)

    id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        primary_key=True,
        default=lambda: str(uuid4()),
    )

    start_time: Mapped[datetime] = mapped_column(UTCDateTime())
    end_time: Mapped[datetime] = mapped_column(UTCDateTime(), index=True)

    votes = relationship("PollVote", back_populates="poll", cascade="all, delete-orphan")

    def is_open(self, now: datetime) -> bool:
        return now <= self.end_time
