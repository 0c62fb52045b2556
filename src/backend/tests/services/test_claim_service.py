"""
Tests for claim, challenge and purchase resolution.
"""

from datetime import datetime, timedelta, timezone

import pytest

from core.exceptions import (
    AlreadyResolved,
    ConflictingRequest,
    InsufficientFunds,
    NotFound,
    PollOpen,
    SelfTargetError,
    ValidationError,
    ZeroValueClaim,
)
from models.claim import ClaimKind, ClaimStatus
from services.accrual_service import AccrualService
from services.claim_service import ClaimService
from services.ledger_service import LedgerService
from services.poll_service import NAY, YAY

SCOPE = "house-1"
NOW = datetime(2024, 1, 10, tzinfo=timezone.utc)
HOUR = timedelta(hours=1)


@pytest.fixture
def claims(db, params) -> ClaimService:
    return ClaimService(db, params)


@pytest.fixture
def ledger(db, params) -> LedgerService:
    return LedgerService(db, params)


async def initialise_all(ledger: LedgerService, at: datetime) -> None:
    for pid in ("alice", "bob", "carol"):
        await ledger.initialise(SCOPE, pid, at)


class TestChoreClaims:
    """Test claiming accrued entity value."""

    async def test_zero_value_claim_rejected(self, claims, household) -> None:
        dishes = household["entities"][0]
        with pytest.raises(ZeroValueClaim):
            await claims.open_claim(SCOPE, "alice", dishes.id, NOW)

    async def test_unknown_entity(self, claims, household) -> None:
        with pytest.raises(NotFound):
            await claims.open_claim(SCOPE, "alice", 9999, NOW)

    async def test_valid_claim_fixes_value(self, db, params, claims, household) -> None:
        dishes = household["entities"][0]
        events = await AccrualService(db, params).emit(SCOPE, NOW)
        emitted = {e.entity_id: e.amount for e in events}[dishes.id]

        claim = await claims.open_claim(SCOPE, "alice", dishes.id, NOW + HOUR)
        assert claim.requested_value == pytest.approx(emitted)
        assert claim.status == ClaimStatus.OPEN

        await claims.vote(claim.id, "bob", NOW + 2 * HOUR, YAY)
        await claims.vote(claim.id, "carol", NOW + 3 * HOUR, YAY)

        with pytest.raises(PollOpen):
            await claims.resolve(claim.id, NOW + 47 * HOUR)

        outcome = await claims.resolve(claim.id, NOW + 49 * HOUR)
        assert outcome.valid
        assert outcome.value == pytest.approx(emitted)
        assert (outcome.yays, outcome.nays, outcome.min_votes) == (2, 0, params.claim_min_votes)

        stored = await claims.get(claim.id)
        assert stored.status == ClaimStatus.VALID
        assert stored.value == pytest.approx(emitted)

    async def test_claim_without_quorum_is_invalid(self, db, params, claims, household) -> None:
        dishes = household["entities"][0]
        await AccrualService(db, params).emit(SCOPE, NOW)
        claim = await claims.open_claim(SCOPE, "alice", dishes.id, NOW + HOUR)
        await claims.vote(claim.id, "bob", NOW + 2 * HOUR, YAY)

        outcome = await claims.resolve(claim.id, NOW + 49 * HOUR)
        assert not outcome.valid
        assert outcome.value == 0

    async def test_tie_is_invalid(self, db, params, claims, household) -> None:
        dishes = household["entities"][0]
        await AccrualService(db, params).emit(SCOPE, NOW)
        claim = await claims.open_claim(SCOPE, "alice", dishes.id, NOW + HOUR)
        await claims.vote(claim.id, "alice", NOW + 2 * HOUR, YAY)
        await claims.vote(claim.id, "bob", NOW + 2 * HOUR, YAY)
        await claims.vote(claim.id, "carol", NOW + 2 * HOUR, NAY)
        await claims.vote(claim.id, "dave", NOW + 2 * HOUR, NAY)

        outcome = await claims.resolve(claim.id, NOW + 49 * HOUR)
        assert not outcome.valid

    async def test_resolving_twice_fails(self, db, params, claims, household) -> None:
        dishes = household["entities"][0]
        await AccrualService(db, params).emit(SCOPE, NOW)
        claim = await claims.open_claim(SCOPE, "alice", dishes.id, NOW + HOUR)

        await claims.resolve(claim.id, NOW + 49 * HOUR)
        with pytest.raises(AlreadyResolved):
            await claims.resolve(claim.id, NOW + 50 * HOUR)

    async def test_conditional_update_only_wins_once(self, db, params, claims, household) -> None:
        dishes = household["entities"][0]
        await AccrualService(db, params).emit(SCOPE, NOW)
        claim = await claims.open_claim(SCOPE, "alice", dishes.id, NOW + HOUR)

        assert await claims.claims.mark_resolved(claim.id, NOW + 49 * HOUR, True, 1.0)
        assert not await claims.claims.mark_resolved(claim.id, NOW + 49 * HOUR, False, 0.0)

    async def test_duplicate_open_claim_rejected(self, db, params, claims, household) -> None:
        dishes = household["entities"][0]
        await AccrualService(db, params).emit(SCOPE, NOW)
        await claims.open_claim(SCOPE, "alice", dishes.id, NOW + HOUR)
        await AccrualService(db, params).emit(SCOPE, NOW + 5 * HOUR)

        with pytest.raises(ConflictingRequest):
            await claims.open_claim(SCOPE, "alice", dishes.id, NOW + 6 * HOUR)

    async def test_open_claim_resets_value_for_others(self, db, params, claims, household) -> None:
        dishes = household["entities"][0]
        await AccrualService(db, params).emit(SCOPE, NOW)
        await claims.open_claim(SCOPE, "alice", dishes.id, NOW + HOUR)

        with pytest.raises(ZeroValueClaim):
            await claims.open_claim(SCOPE, "bob", dishes.id, NOW + 2 * HOUR)


class TestChallenges:
    """Test heart challenges and severity-scaled quorum."""

    async def test_self_challenge_rejected(self, claims, household) -> None:
        with pytest.raises(SelfTargetError):
            await claims.open_challenge(SCOPE, "alice", "alice", 1, NOW)

    async def test_non_positive_challenge_rejected(self, claims, household) -> None:
        with pytest.raises(ValidationError):
            await claims.open_challenge(SCOPE, "alice", "bob", 0, NOW)

    async def test_one_open_challenge_per_pair(self, claims, household) -> None:
        await claims.open_challenge(SCOPE, "alice", "bob", 1, NOW)
        with pytest.raises(ConflictingRequest):
            await claims.open_challenge(SCOPE, "alice", "bob", 2, NOW + HOUR)
        # The reverse direction is a different pair
        await claims.open_challenge(SCOPE, "bob", "alice", 1, NOW + HOUR)

    async def test_upheld_challenge_costs_target(self, claims, ledger, household) -> None:
        await initialise_all(ledger, NOW)
        challenge = await claims.open_challenge(SCOPE, "alice", "bob", 1, NOW + HOUR, circumstance="dishes")
        assert challenge.details == {"circumstance": "dishes"}

        await claims.vote(challenge.id, "alice", NOW + 2 * HOUR, YAY)
        await claims.vote(challenge.id, "carol", NOW + 2 * HOUR, YAY)

        outcome = await claims.resolve(challenge.id, NOW + 73 * HOUR)
        assert outcome.valid
        assert outcome.min_votes == 2  # ceil(3 * 0.4)
        assert await ledger.balance("bob", NOW + 73 * HOUR) == pytest.approx(4)
        assert await ledger.balance("alice", NOW + 73 * HOUR) == pytest.approx(5)

    async def test_rejected_challenge_costs_challenger(self, claims, ledger, household) -> None:
        await initialise_all(ledger, NOW)
        challenge = await claims.open_challenge(SCOPE, "alice", "bob", 1, NOW + HOUR)
        await claims.vote(challenge.id, "bob", NOW + 2 * HOUR, NAY)

        outcome = await claims.resolve(challenge.id, NOW + 73 * HOUR)
        assert not outcome.valid
        assert outcome.value == 1
        assert await ledger.balance("alice", NOW + 73 * HOUR) == pytest.approx(4)
        assert await ledger.balance("bob", NOW + 73 * HOUR) == pytest.approx(5)

    async def test_critical_challenge_needs_larger_quorum(self, claims, ledger, household) -> None:
        await initialise_all(ledger, NOW)
        challenge = await claims.open_challenge(SCOPE, "alice", "bob", 4, NOW + HOUR)
        await claims.vote(challenge.id, "alice", NOW + 2 * HOUR, YAY)
        await claims.vote(challenge.id, "carol", NOW + 2 * HOUR, YAY)

        outcome = await claims.resolve(challenge.id, NOW + 73 * HOUR)
        assert outcome.min_votes == 3  # ceil(3 * 0.7)
        assert not outcome.valid
        assert await ledger.balance("alice", NOW + 73 * HOUR) == pytest.approx(1)


class TestPurchases:
    """Test funds-backed purchases."""

    async def test_insufficient_funds(self, claims, household) -> None:
        with pytest.raises(InsufficientFunds):
            await claims.open_buy(SCOPE, "alice", "olive oil", 10, NOW)

    async def test_funds_held_at_open_and_refunded_on_rejection(self, claims, ledger, household) -> None:
        await ledger.load_funds(SCOPE, "bob", NOW, 100)
        buy = await claims.open_buy(SCOPE, "alice", "olive oil", 60, NOW + HOUR)
        assert (await ledger.funds_balance(SCOPE, NOW + HOUR)).amount == pytest.approx(40)

        with pytest.raises(InsufficientFunds):
            await claims.open_buy(SCOPE, "carol", "coffee", 50, NOW + HOUR)

        await claims.vote(buy.id, "alice", NOW + 2 * HOUR, YAY)
        outcome = await claims.resolve(buy.id, NOW + 25 * HOUR)
        assert outcome.min_votes == 2  # ceil(60 / 50)
        assert not outcome.valid
        assert (await ledger.funds_balance(SCOPE, NOW + 25 * HOUR)).amount == pytest.approx(100)

    async def test_approved_purchase_is_fulfilled(self, claims, ledger, household) -> None:
        await ledger.load_funds(SCOPE, "bob", NOW, 100)
        buy = await claims.open_buy(SCOPE, "alice", "olive oil", 40, NOW + HOUR)
        await claims.vote(buy.id, "alice", NOW + 2 * HOUR, YAY)

        outcome = await claims.resolve(buy.id, NOW + 25 * HOUR)
        assert outcome.valid
        assert outcome.value == 40
        assert (await ledger.funds_balance(SCOPE, NOW + 25 * HOUR)).amount == pytest.approx(60)
        assert [c.id for c in await claims.unfulfilled_purchases(SCOPE)] == [buy.id]

        fulfilled = await claims.fulfill(buy.id, "bob", NOW + 30 * HOUR)
        assert fulfilled.fulfilled_by == "bob"
        assert await claims.unfulfilled_purchases(SCOPE) == []

        with pytest.raises(AlreadyResolved):
            await claims.fulfill(buy.id, "bob", NOW + 31 * HOUR)

    async def test_only_approved_purchases_can_be_fulfilled(self, claims, ledger, household) -> None:
        await ledger.load_funds(SCOPE, "bob", NOW, 100)
        buy = await claims.open_buy(SCOPE, "alice", "olive oil", 40, NOW + HOUR)
        with pytest.raises(ValidationError):
            await claims.fulfill(buy.id, "bob", NOW + 2 * HOUR)


class TestResolveBatch:
    """Test batch resolution."""

    async def test_resolves_only_closed_polls(self, db, params, claims, ledger, household) -> None:
        dishes, sweeping, _ = household["entities"]
        await AccrualService(db, params).emit(SCOPE, NOW)
        first = await claims.open_claim(SCOPE, "alice", dishes.id, NOW + HOUR)
        second = await claims.open_claim(SCOPE, "bob", sweeping.id, NOW + 10 * HOUR)

        batch = await claims.resolve_batch(SCOPE, NOW + 49 * HOUR)
        assert [o.claim_id for o in batch.resolved] == [first.id]
        assert batch.skipped == [] and batch.failed == []

        batch = await claims.resolve_batch(SCOPE, NOW + 60 * HOUR)
        assert [o.claim_id for o in batch.resolved] == [second.id]

        batch = await claims.resolve_batch(SCOPE, NOW + 100 * HOUR)
        assert batch.resolved == []

    async def test_filters_by_kind(self, db, params, claims, ledger, household) -> None:
        dishes = household["entities"][0]
        await AccrualService(db, params).emit(SCOPE, NOW)
        await claims.open_claim(SCOPE, "alice", dishes.id, NOW + HOUR)
        challenge = await claims.open_challenge(SCOPE, "alice", "bob", 1, NOW + HOUR)

        batch = await claims.resolve_batch(SCOPE, NOW + 80 * HOUR, ClaimKind.CHALLENGE)
        assert [o.claim_id for o in batch.resolved] == [challenge.id]
