"""
Tests for the preference service.
"""

from datetime import datetime, timezone

import pytest

from core.exceptions import NotFound
from repositories.catalog_repository import CatalogRepository
from repositories.roster_repository import RosterRepository
from schemas.preference import CanonicalPreference, DirectionalPreference
from services.preference_service import PreferenceService

NOW = datetime(2024, 1, 10, tzinfo=timezone.utc)


@pytest.fixture
def service(db, params) -> PreferenceService:
    return PreferenceService(db, params)


def ids(household) -> tuple[int, int, int]:
    dishes, sweeping, trash = household["entities"]
    return dishes.id, sweeping.id, trash.id


class TestPreferenceService:
    """Test storing preferences and ranking by them."""

    async def test_set_stores_canonical_rows(self, service, household) -> None:
        dishes, sweeping, _ = ids(household)
        stored = await service.set_preferences(
            "house-1", "alice", [DirectionalPreference(source_id=sweeping, target_id=dishes, value=0.9)]
        )
        assert stored == [
            CanonicalPreference(participant_id="alice", alpha_id=dishes, beta_id=sweeping, value=0.9)
        ]
        assert await service.get_preferences("house-1", "alice") == stored

    async def test_last_write_wins(self, service, household) -> None:
        dishes, sweeping, _ = ids(household)
        await service.set_preferences(
            "house-1", "alice", [DirectionalPreference(source_id=sweeping, target_id=dishes, value=0.9)]
        )
        await service.set_preferences(
            "house-1", "alice", [DirectionalPreference(source_id=dishes, target_id=sweeping, value=0.9)]
        )

        stored = await service.get_preferences("house-1", "alice")
        assert len(stored) == 1
        assert stored[0].value == pytest.approx(0.1)

    async def test_self_preferences_dropped(self, service, household) -> None:
        dishes, _, _ = ids(household)
        stored = await service.set_preferences(
            "house-1", "alice", [DirectionalPreference(source_id=dishes, target_id=dishes, value=1)]
        )
        assert stored == []

    async def test_unknown_entity_rejected(self, service, household) -> None:
        dishes, _, _ = ids(household)
        with pytest.raises(NotFound):
            await service.set_preferences(
                "house-1", "alice", [DirectionalPreference(source_id=dishes, target_id=9999, value=1)]
            )

    async def test_rankings_uniform_without_preferences(self, service, household) -> None:
        result = await service.current_rankings("house-1", NOW)
        assert len(result.weights) == 3
        for weight in result.weights.values():
            assert weight == pytest.approx(1 / 3)
        assert result.participant_count == 3

    async def test_preferred_entity_weighted_highest(self, service, household) -> None:
        dishes, sweeping, trash = ids(household)
        for participant in ("alice", "bob"):
            await service.set_preferences(
                "house-1",
                participant,
                [
                    DirectionalPreference(source_id=sweeping, target_id=dishes, value=1),
                    DirectionalPreference(source_id=trash, target_id=dishes, value=1),
                ],
            )
        weighted = await service.weighted_entities("house-1", NOW)
        assert weighted[0].entity_id == dishes
        assert weighted[0].name == "dishes"
        assert sum(w.weight for w in weighted) == pytest.approx(1.0)

    async def test_chained_preferences_order_entities(self, service, household) -> None:
        dishes, sweeping, trash = ids(household)
        await service.set_preferences(
            "house-1", "alice", [DirectionalPreference(source_id=sweeping, target_id=dishes, value=1)]
        )
        await service.set_preferences(
            "house-1", "bob", [DirectionalPreference(source_id=trash, target_id=sweeping, value=1)]
        )

        result = await service.current_rankings("house-1", NOW)
        assert [entity_id for entity_id, _ in result.ordered()] == [dishes, sweeping, trash]

    async def test_proposed_rankings_do_not_write(self, service, household) -> None:
        dishes, sweeping, _ = ids(household)
        proposed = await service.proposed_rankings(
            "house-1", "alice", [DirectionalPreference(source_id=sweeping, target_id=dishes, value=1)], NOW
        )
        current = await service.current_rankings("house-1", NOW)

        assert proposed.weights[dishes] > current.weights[dishes]
        assert await service.get_preferences("house-1") == []

    async def test_inactive_entities_excluded(self, db, service, household) -> None:
        dishes, sweeping, trash = ids(household)
        await service.set_preferences(
            "house-1", "alice", [DirectionalPreference(source_id=dishes, target_id=trash, value=1)]
        )
        await CatalogRepository(db).deactivate("house-1", ["trash"])

        result = await service.current_rankings("house-1", NOW)
        assert set(result.weights) == {dishes, sweeping}
        assert result.weights[dishes] == pytest.approx(0.5)

    async def test_deactivated_participants_ignored(self, db, service, household) -> None:
        dishes, sweeping, _ = ids(household)
        await service.set_preferences(
            "house-1", "alice", [DirectionalPreference(source_id=sweeping, target_id=dishes, value=1)]
        )
        await RosterRepository(db).deactivate("alice")

        result = await service.current_rankings("house-1", NOW)
        assert result.weights[dishes] == pytest.approx(result.weights[sweeping])
