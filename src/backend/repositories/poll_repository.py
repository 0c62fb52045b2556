"""
Poll repository for database operations.
"""

from datetime import datetime
from typing import Optional
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from models.poll import Poll


class PollRepository:
    """Repository for poll database operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_id(self, poll_id: str) -> Optional[Poll]:
        result = await self.db.execute(select(Poll).where(Poll.id == poll_id))
        return result.scalar_one_or_none()

    async def create(self, start_time: datetime, end_time: datetime) -> Poll:
        """Create a new poll window."""
        poll = Poll(id=str(uuid4()), start_time=start_time, end_time=end_time)
        self.db.add(poll)
        await self.db.flush()
        return poll
