"""
Vote repository for database operations.

Implements privacy-preserving vote storage.
"""

from datetime import datetime
from typing import Optional
from uuid import uuid4

from sqlalchemy import and_, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import ConcurrencyConflict
from models.vote import PollVote


class VoteRepository:
    """Repository for vote database operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_hash(self, poll_id: str, voter_hash: str) -> Optional[PollVote]:
        """Get a vote by its privacy-preserving hash."""
        result = await self.db.execute(
            select(PollVote).where(
                and_(PollVote.poll_id == poll_id, PollVote.voter_hash == voter_hash)
            )
        )
        return result.scalar_one_or_none()

    async def upsert(
        self,
        poll_id: str,
        voter_hash: str,
        value: bool,
        submitted_at: datetime,
    ) -> PollVote:
        """
        Record a vote, overwriting this voter's earlier vote on the poll.

        NOTE: participant id is NEVER stored - only the hash.
        """
        vote = await self.get_by_hash(poll_id, voter_hash)
        if vote is not None:
            vote.value = value
            vote.submitted_at = submitted_at
            await self.db.flush()
            return vote

        vote = PollVote(
            id=str(uuid4()),
            poll_id=poll_id,
            voter_hash=voter_hash,
            value=value,
            submitted_at=submitted_at,
        )
        try:
            async with self.db.begin_nested():
                self.db.add(vote)
        except IntegrityError:
            # Same voter raced us; fall back to overwrite
            existing = await self.get_by_hash(poll_id, voter_hash)
            if existing is None:
                raise ConcurrencyConflict(f"Vote on poll {poll_id} changed during write")
            existing.value = value
            existing.submitted_at = submitted_at
            await self.db.flush()
            return existing
        return vote

    async def count_by_value(
        self, poll_id: str, start: datetime, end: datetime
    ) -> dict[bool, int]:
        """Distinct voters per value among votes submitted within ``[start, end]``."""
        result = await self.db.execute(
            select(
                PollVote.value,
                func.count(func.distinct(PollVote.voter_hash)).label("count"),
            )
            .where(
                and_(
                    PollVote.poll_id == poll_id,
                    PollVote.submitted_at >= start,
                    PollVote.submitted_at <= end,
                )
            )
            .group_by(PollVote.value)
        )
        counts = {True: 0, False: 0}
        for row in result.all():
            counts[bool(row[0])] = row[1]
        return counts
