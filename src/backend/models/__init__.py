"""Database models module."""

from models.claim import Claim, ClaimKind, ClaimStatus
from models.entity import RankedEntity
from models.karma import KarmaNomination
from models.ledger import LedgerCategory, LedgerEvent, LedgerKind
from models.participant import Participant, ParticipantBreak
from models.poll import Poll
from models.preference import Preference
from models.scope import Scope
from models.value_event import ValueEvent
from models.vote import PollVote

__all__ = [
    "Scope",
    "Participant",
    "ParticipantBreak",
    "RankedEntity",
    "Preference",
    "Poll",
    "PollVote",
    "ValueEvent",
    "Claim",
    "ClaimKind",
    "ClaimStatus",
    "LedgerEvent",
    "LedgerKind",
    "LedgerCategory",
    "KarmaNomination",
]
