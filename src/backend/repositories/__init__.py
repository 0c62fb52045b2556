"""Repository modules for database access."""

from repositories.catalog_repository import CatalogRepository
from repositories.claim_repository import ClaimRepository
from repositories.karma_repository import KarmaRepository
from repositories.ledger_repository import LedgerRepository
from repositories.poll_repository import PollRepository
from repositories.preference_repository import PreferenceRepository
from repositories.roster_repository import RosterRepository
from repositories.scope_repository import ScopeRepository
from repositories.value_event_repository import ValueEventRepository
from repositories.vote_repository import VoteRepository

__all__ = [
    "ScopeRepository",
    "RosterRepository",
    "CatalogRepository",
    "PreferenceRepository",
    "PollRepository",
    "VoteRepository",
    "ValueEventRepository",
    "ClaimRepository",
    "LedgerRepository",
    "KarmaRepository",
]
