"""
Vote model.

Privacy-preserving vote storage using cryptographic hashing.
The participant id is NEVER stored with the vote - only a one-way hash.
"""

from datetime import datetime
from uuid import uuid4

from sqlalchemy import Boolean, ForeignKey, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from db.base import Base
from db.types import UTCDateTime


class PollVote(Base):
    """
    Privacy-preserving vote record.

    PRIVACY DESIGN:
    - participant id is NEVER stored
    - voter_hash = SHA-256(salt + participant id) - cannot be reversed
    - One row per (poll, voter_hash); resubmission overwrites
    """

    __tablename__ = "poll_votes"
    __table_args__ = (
        UniqueConstraint("poll_id", "voter_hash", name="uq_poll_votes_poll_voter"),
    )

    id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        primary_key=True,
        default=lambda: str(uuid4()),
    )

    poll_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("polls.id", ondelete="CASCADE"),
        index=True,
    )

    # SHA-256 hex of salt + participant id
    voter_hash: Mapped[str] = mapped_column(String(64))

    # True = yay, False = nay
    value: Mapped[bool] = mapped_column(Boolean)

    submitted_at: Mapped[datetime] = mapped_column(UTCDateTime())

    poll = relationship("Poll", back_populates="votes")
