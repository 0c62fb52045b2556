"""
Claim resolution schemas.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from models.claim import ClaimKind


class ResolutionOutcome(BaseModel):
    """What a resolution decided, and on what votes."""

    claim_id: str
    kind: ClaimKind
    valid: bool
    value: float
    yays: int
    nays: int
    min_votes: int
    resolved_at: datetime


class BatchResolution(BaseModel):
    """Summary of one ``resolve_batch`` pass."""

    resolved: list[ResolutionOutcome] = []
    skipped: list[str] = []
    failed: list[str] = []


class ClaimSummary(BaseModel):
    """Read model of a poll-gated request."""

    id: str
    kind: ClaimKind
    initiator_id: str
    target: str
    requested_value: float
    value: Optional[float] = None
    poll_id: str
    opened_at: datetime
    resolved_at: Optional[datetime] = None
    valid: Optional[bool] = None

    model_config = {"from_attributes": True}
