"""
Ledger schemas.
"""

from datetime import datetime

from pydantic import BaseModel

from models.ledger import LedgerKind


class Balance(BaseModel):
    """Derived balance of one ledger at a point in time."""

    owner_id: str
    ledger: LedgerKind
    amount: float
    as_of: datetime


class KarmaWinner(BaseModel):
    """Participant rewarded by the monthly karma ranking."""

    participant_id: str
    weight: float
    reward: float
