"""
Tests for preference normalization and merging.
"""

import pydantic
import pytest
from pydantic import TypeAdapter

from core.exceptions import InvalidPreference
from schemas.preference import (
    CanonicalPreference,
    DirectionalPreference,
    PreferenceInput,
    merge_preferences,
)


@pytest.mark.unit
class TestNormalize:
    """Test directional to canonical conversion."""

    def test_target_below_source_keeps_value(self) -> None:
        canonical = DirectionalPreference(source_id=5, target_id=2, value=0.8).normalize()
        assert (canonical.alpha_id, canonical.beta_id, canonical.value) == (2, 5, 0.8)

    def test_target_above_source_inverts_value(self) -> None:
        canonical = DirectionalPreference(source_id=2, target_id=5, value=0.8).normalize()
        assert (canonical.alpha_id, canonical.beta_id) == (2, 5)
        assert canonical.value == pytest.approx(0.2)

    def test_participant_is_carried(self) -> None:
        canonical = DirectionalPreference(participant_id="alice", source_id=1, target_id=2, value=1).normalize()
        assert canonical.participant_id == "alice"

    def test_self_preference_rejected(self) -> None:
        with pytest.raises(InvalidPreference):
            DirectionalPreference(source_id=3, target_id=3, value=1).normalize()

    def test_canonical_is_noop(self) -> None:
        canonical = CanonicalPreference(alpha_id=1, beta_id=2, value=0.3)
        assert canonical.normalize() is canonical

    def test_canonical_out_of_order_rejected(self) -> None:
        with pytest.raises(InvalidPreference):
            CanonicalPreference(alpha_id=2, beta_id=1, value=0.3).normalize()

    def test_value_range_validated(self) -> None:
        with pytest.raises(pydantic.ValidationError):
            DirectionalPreference(source_id=1, target_id=2, value=1.5)

    def test_tagged_union_dispatch(self) -> None:
        adapter = TypeAdapter(PreferenceInput)
        directional = adapter.validate_python({"kind": "directional", "source_id": 1, "target_id": 2, "value": 1})
        canonical = adapter.validate_python({"kind": "canonical", "alpha_id": 1, "beta_id": 2, "value": 1})
        assert isinstance(directional, DirectionalPreference)
        assert isinstance(canonical, CanonicalPreference)
        assert directional.normalize().value == 0.0


@pytest.mark.unit
class TestMerge:
    """Test merge_preferences."""

    def test_incoming_wins_per_participant_and_pair(self) -> None:
        existing = [
            CanonicalPreference(participant_id="alice", alpha_id=1, beta_id=2, value=0.1),
            CanonicalPreference(participant_id="bob", alpha_id=1, beta_id=2, value=0.2),
        ]
        incoming = [CanonicalPreference(participant_id="alice", alpha_id=1, beta_id=2, value=0.9)]
        merged = merge_preferences(existing, incoming)
        assert len(merged) == 2
        assert {p.participant_id: p.value for p in merged} == {"alice": 0.9, "bob": 0.2}

    def test_new_pairs_are_appended(self) -> None:
        existing = [CanonicalPreference(participant_id="alice", alpha_id=1, beta_id=2, value=0.1)]
        incoming = [CanonicalPreference(participant_id="alice", alpha_id=2, beta_id=3, value=0.5)]
        assert [p.key for p in merge_preferences(existing, incoming)] == [("alice", 1, 2), ("alice", 2, 3)]

    def test_merge_is_idempotent(self) -> None:
        existing = [CanonicalPreference(participant_id="alice", alpha_id=1, beta_id=2, value=0.1)]
        incoming = [CanonicalPreference(participant_id="alice", alpha_id=1, beta_id=3, value=0.4)]
        once = merge_preferences(existing, incoming)
        assert merge_preferences(once, incoming) == once
