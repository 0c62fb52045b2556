"""
Poll-related Pydantic schemas.
"""

from datetime import datetime

from pydantic import BaseModel


class PollWindow(BaseModel):
    """Voting window of a poll."""

    id: str
    start_time: datetime
    end_time: datetime

    model_config = {"from_attributes": True}


class PollResultCounts(BaseModel):
    """Distinct voters for and against within the poll window."""

    poll_id: str
    yays: int = 0
    nays: int = 0

    @property
    def total(self) -> int:
        return self.yays + self.nays
