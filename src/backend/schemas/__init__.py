"""Schemas module initialization."""

from schemas.claim import BatchResolution, ClaimSummary, ResolutionOutcome
from schemas.ledger import Balance, KarmaWinner
from schemas.poll import PollResultCounts, PollWindow
from schemas.preference import (
    CanonicalPreference,
    DirectionalPreference,
    PreferenceInput,
    merge_preferences,
)
from schemas.ranking import EntityValue, EntityWeight, RankingResult

__all__ = [
    "CanonicalPreference",
    "DirectionalPreference",
    "PreferenceInput",
    "merge_preferences",
    "RankingResult",
    "EntityWeight",
    "EntityValue",
    "PollWindow",
    "PollResultCounts",
    "ResolutionOutcome",
    "BatchResolution",
    "ClaimSummary",
    "Balance",
    "KarmaWinner",
]
