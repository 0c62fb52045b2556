"""
Preference service: stating preferences and ranking entities by them.
"""

from datetime import datetime
from typing import Iterable, Optional, Sequence, Union

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import NotFound
from core.parameters import ScopeParameters
from repositories.preference_repository import PreferenceRepository
from repositories.provider import (
    CatalogProviderProtocol,
    RosterProviderProtocol,
    get_catalog_provider,
    get_roster_provider,
)
from schemas.preference import CanonicalPreference, DirectionalPreference, merge_preferences
from schemas.ranking import EntityWeight, RankingResult
from services.ranking import RankingEngine

logger = structlog.get_logger(__name__)

PreferenceLike = Union[DirectionalPreference, CanonicalPreference]


def normalize_for(
    participant_id: str, preferences: Iterable[PreferenceLike]
) -> list[CanonicalPreference]:
    """
    Attribute preferences to ``participant_id`` and normalize them.

    Directional preferences of an entity against itself carry no
    information and are dropped.
    """
    normalized = []
    for preference in preferences:
        if isinstance(preference, DirectionalPreference) and preference.source_id == preference.target_id:
            continue
        canonical = preference.normalize()
        normalized.append(canonical.model_copy(update={"participant_id": participant_id}))
    return normalized


class PreferenceService:
    """Stores preferences and computes current or proposed rankings."""

    def __init__(
        self,
        db: AsyncSession,
        params: ScopeParameters,
        roster: Optional[RosterProviderProtocol] = None,
        catalog: Optional[CatalogProviderProtocol] = None,
    ):
        self.preferences = PreferenceRepository(db)
        self.roster = roster or get_roster_provider(db)
        self.catalog = catalog or get_catalog_provider(db)
        self.engine = RankingEngine.from_parameters(params)

    async def set_preferences(
        self,
        scope_id: str,
        participant_id: str,
        preferences: Iterable[PreferenceLike],
    ) -> list[CanonicalPreference]:
        normalized = normalize_for(participant_id, preferences)
        await self._check_entities(scope_id, normalized)
        await self.preferences.set_preferences(scope_id, normalized)
        logger.info(
            "preferences_set",
            scope_id=scope_id,
            participant_id=participant_id,
            count=len(normalized),
        )
        return normalized

    async def get_preferences(
        self, scope_id: str, participant_id: Optional[str] = None
    ) -> list[CanonicalPreference]:
        return await self.preferences.get_preferences(scope_id, participant_id)

    async def current_rankings(self, scope_id: str, now: datetime) -> RankingResult:
        preferences = await self.preferences.get_active_preferences(scope_id, now)
        return await self._rank(scope_id, now, preferences)

    async def proposed_rankings(
        self,
        scope_id: str,
        participant_id: str,
        preferences: Iterable[PreferenceLike],
        now: datetime,
    ) -> RankingResult:
        """Rankings as they would be if ``preferences`` were stored; writes nothing."""
        current = await self.preferences.get_active_preferences(scope_id, now)
        proposed = merge_preferences(current, normalize_for(participant_id, preferences))
        return await self._rank(scope_id, now, proposed)

    async def weighted_entities(self, scope_id: str, now: datetime) -> list[EntityWeight]:
        """Active entities with their current weight, heaviest first."""
        entities = await self.catalog.active_entities(scope_id)
        ranking = await self.current_rankings(scope_id, now)
        weighted = [
            EntityWeight(entity_id=e.id, name=e.name, weight=ranking.weights[e.id]) for e in entities
        ]
        return sorted(weighted, key=lambda w: (-w.weight, w.entity_id))

    async def _rank(
        self, scope_id: str, now: datetime, preferences: Sequence[CanonicalPreference]
    ) -> RankingResult:
        entities = await self.catalog.active_entities(scope_id)
        participants = await self.roster.participants(scope_id, now)
        return self.engine.rank([e.id for e in entities], preferences, len(participants))

    async def _check_entities(self, scope_id: str, preferences: Sequence[CanonicalPreference]) -> None:
        ids = {p.alpha_id for p in preferences} | {p.beta_id for p in preferences}
        for entity_id in ids:
            entity = await self.catalog.get_entity(entity_id)
            if entity is None or entity.scope_id != scope_id:
                raise NotFound(f"Entity {entity_id} not found in scope {scope_id}")
