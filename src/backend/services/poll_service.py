"""
Poll service: time-boxed yes/no votes.

Voters are recorded only as ``sha256(salt + participant id)``. A voter may
change their vote until the poll closes; only the latest vote counts.
"""

from datetime import datetime, timedelta

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import NotFound, PollClosed
from core.security import generate_voter_hash
from models.poll import Poll
from models.vote import PollVote
from repositories.poll_repository import PollRepository
from repositories.vote_repository import VoteRepository
from schemas.poll import PollResultCounts

logger = structlog.get_logger(__name__)

YAY = True
NAY = False


class PollService:
    """Create polls, record votes and count them."""

    def __init__(self, db: AsyncSession, salt: str):
        self.polls = PollRepository(db)
        self.votes = VoteRepository(db)
        self.salt = salt

    async def create(self, start: datetime, duration: timedelta) -> Poll:
        return await self.polls.create(start_time=start, end_time=start + duration)

    async def get(self, poll_id: str) -> Poll:
        poll = await self.polls.get_by_id(poll_id)
        if poll is None:
            raise NotFound(f"Poll {poll_id} not found")
        return poll

    async def submit_vote(
        self, poll_id: str, voter_id: str, submitted_at: datetime, value: bool
    ) -> PollVote:
        """
        Record (or overwrite) ``voter_id``'s vote.

        Raises PollClosed once ``submitted_at`` is past the poll's end.
        """
        poll = await self.get(poll_id)
        if not poll.is_open(submitted_at):
            raise PollClosed(f"Poll {poll_id} closed at {poll.end_time.isoformat()}")

        voter_hash = generate_voter_hash(voter_id, self.salt)
        vote = await self.votes.upsert(poll_id, voter_hash, value, submitted_at)
        logger.debug("vote_submitted", poll_id=poll_id, value=value)
        return vote

    async def result_counts(self, poll_id: str) -> PollResultCounts:
        """Distinct voters for and against, counting votes inside the window."""
        poll = await self.get(poll_id)
        counts = await self.votes.count_by_value(poll_id, poll.start_time, poll.end_time)
        return PollResultCounts(poll_id=poll_id, yays=counts[YAY], nays=counts[NAY])
