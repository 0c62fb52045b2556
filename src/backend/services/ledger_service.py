"""
Economic ledger service.

Hearts (reputation), points (claim value adjustments) and the scope's
purchase funds are append-only ledgers; every balance is a sum of events.
Periodic operations (baseline, regeneration, penalty, karma) carry a
``period_key`` so a retried or concurrent run cannot apply them twice.
"""

import math
from datetime import datetime
from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from core import dates
from core.exceptions import InsufficientEntities, InsufficientFunds, SelfTargetError, ValidationError
from core.parameters import ScopeParameters
from models.karma import KarmaNomination
from models.ledger import BASELINE_PERIOD, LedgerCategory, LedgerEvent, LedgerKind
from repositories.claim_repository import ClaimRepository
from repositories.karma_repository import KarmaRepository
from repositories.ledger_repository import LedgerRepository
from repositories.provider import RosterProviderProtocol, get_roster_provider
from schemas.ledger import Balance, KarmaWinner
from schemas.preference import DirectionalPreference
from services.accrual_service import AccrualService
from services.ranking import RankingEngine

logger = structlog.get_logger(__name__)

KARMA_REWARD = 1.0


def num_karma_winners(voting_count: int, receiver_count: int, proportion: int) -> int:
    """One winner per ``proportion`` voters, never more than there were receivers."""
    return min(voting_count // proportion, receiver_count)


def penalty_for(owed: float, points: float, increment: float) -> float:
    """
    Hearts lost for falling short of ``owed`` points.

    The shortfall is floored to whole increments and every increment costs
    half a heart.
    """
    deficiency = max(owed - points, 0.0)
    floored = math.floor(deficiency / increment) * increment
    return floored / (2 * increment)


class LedgerService:
    """Balances and ledger-changing operations for one scope's participants."""

    def __init__(
        self,
        db: AsyncSession,
        params: ScopeParameters,
        roster: Optional[RosterProviderProtocol] = None,
    ):
        self.params = params
        self.ledger = LedgerRepository(db)
        self.claims = ClaimRepository(db)
        self.karma = KarmaRepository(db)
        self.roster = roster or get_roster_provider(db)
        self.accrual = AccrualService(db, params, roster=self.roster)
        self.engine = RankingEngine.from_parameters(params)

    # ========================================================================
    # Balances
    # ========================================================================

    async def balance(
        self, participant_id: str, at: datetime, ledger: LedgerKind = LedgerKind.HEARTS
    ) -> float:
        return await self.ledger.balance(participant_id, ledger, at)

    async def hearts(self, participant_id: str, at: datetime) -> Balance:
        amount = await self.ledger.balance(participant_id, LedgerKind.HEARTS, at)
        return Balance(owner_id=participant_id, ledger=LedgerKind.HEARTS, amount=amount, as_of=at)

    async def scope_hearts(self, scope_id: str, at: datetime) -> list[Balance]:
        """
        Hearts of every voting participant holding any, highest first.

        Exempt participants are left out.
        """
        voters = [p.id for p in await self.roster.voting_participants(scope_id, at)]
        sums = await self.ledger.balances(voters, LedgerKind.HEARTS, at)
        return [
            Balance(owner_id=participant_id, ledger=LedgerKind.HEARTS, amount=amount, as_of=at)
            for participant_id, amount in sorted(sums.items(), key=lambda item: (-item[1], item[0]))
        ]

    async def points(
        self, participant_id: str, start: datetime, end: datetime, include_end: bool = False
    ) -> float:
        """Upheld claim value plus points-ledger adjustments within the window."""
        claimed = await self.claims.sum_valid_claims(participant_id, start, end, include_end=include_end)
        adjusted = await self.ledger.balance_between(
            participant_id, LedgerKind.POINTS, start, end, include_end=include_end
        )
        return claimed + adjusted

    # ========================================================================
    # Hearts lifecycle
    # ========================================================================

    async def initialise(self, scope_id: str, participant_id: str, at: datetime) -> Optional[LedgerEvent]:
        """Grant the baseline hearts to a participant with no hearts history at all."""
        if await self.ledger.has_events(participant_id, LedgerKind.HEARTS):
            return None

        event = await self.ledger.append_once(
            scope_id=scope_id,
            participant_id=participant_id,
            ledger=LedgerKind.HEARTS,
            category=LedgerCategory.BASELINE,
            amount=self.params.hearts_baseline,
            occurred_at=at,
            period_key=BASELINE_PERIOD,
        )
        if event is not None:
            logger.info("hearts_initialised", scope_id=scope_id, participant_id=participant_id)
        return event

    async def regenerate(self, scope_id: str, participant_id: str, at: datetime) -> Optional[LedgerEvent]:
        """
        Monthly regeneration, applied at the start of ``at``'s month.

        Skipped for participants without earlier hearts events and for
        those already at the cap; the amount is clipped to the cap.
        """
        regen_time = dates.month_start(at)
        key = dates.period_key(regen_time)

        if await self.ledger.has_period_event(
            participant_id, LedgerKind.HEARTS, LedgerCategory.REGENERATION, key
        ):
            return None
        if not await self.ledger.has_events(participant_id, LedgerKind.HEARTS, regen_time):
            return None

        balance = await self.ledger.balance(participant_id, LedgerKind.HEARTS, regen_time)
        if balance >= self.params.hearts_max:
            return None

        amount = min(self.params.hearts_regen_amount, self.params.hearts_max - balance)
        return await self.ledger.append_once(
            scope_id=scope_id,
            participant_id=participant_id,
            ledger=LedgerKind.HEARTS,
            category=LedgerCategory.REGENERATION,
            amount=amount,
            occurred_at=regen_time,
            period_key=key,
        )

    async def calculate_penalty(self, participant_id: str, penalty_time: datetime) -> float:
        """Penalty owed at ``penalty_time`` for the previous month's shortfall."""
        prev_start = dates.prev_month_start(penalty_time)
        this_start = dates.month_start(penalty_time)

        points = await self.points(participant_id, prev_start, this_start)
        fraction = await self.accrual.active_fraction(participant_id, prev_start)
        owed = self.params.points_per_participant * fraction
        return penalty_for(owed, points, self.params.penalty_increment)

    async def penalty(self, scope_id: str, participant_id: str, at: datetime) -> Optional[LedgerEvent]:
        """
        Apply last month's penalty once the grace delay has passed.

        A zero penalty is still recorded, marking the month as settled.
        """
        penalty_time = dates.month_start(at) + self.params.penalty_delay_hours * dates.HOUR
        if at < penalty_time:
            return None

        key = dates.period_key(penalty_time)
        if await self.ledger.has_period_event(
            participant_id, LedgerKind.HEARTS, LedgerCategory.PENALTY, key
        ):
            return None
        # Never-initialised participants are not penalised
        if not await self.ledger.has_events(participant_id, LedgerKind.HEARTS, penalty_time):
            return None

        amount = await self.calculate_penalty(participant_id, penalty_time)
        event = await self.ledger.append_once(
            scope_id=scope_id,
            participant_id=participant_id,
            ledger=LedgerKind.HEARTS,
            category=LedgerCategory.PENALTY,
            amount=-amount,
            occurred_at=penalty_time,
            period_key=key,
        )
        if event is not None and amount > 0:
            logger.info("penalty_applied", scope_id=scope_id, participant_id=participant_id, hearts=amount)
        return event

    async def apply_challenge(
        self, scope_id: str, loser_id: str, amount: float, at: datetime, claim_id: str
    ) -> LedgerEvent:
        return await self.ledger.append(
            scope_id=scope_id,
            participant_id=loser_id,
            ledger=LedgerKind.HEARTS,
            category=LedgerCategory.CHALLENGE,
            amount=-amount,
            occurred_at=at,
            reference_id=claim_id,
        )

    # ========================================================================
    # Points
    # ========================================================================

    async def gift(
        self,
        scope_id: str,
        from_id: str,
        to_id: str,
        at: datetime,
        amount: float,
    ) -> tuple[LedgerEvent, LedgerEvent]:
        """
        Move points from one participant to another.

        The sender must hold at least ``amount`` points earned this month.
        """
        if from_id == to_id:
            raise SelfTargetError("Cannot gift points to yourself")
        if amount <= 0:
            raise ValidationError("Gift amount must be positive")

        available = await self.points(from_id, dates.month_start(at), at, include_end=True)
        if available < amount:
            raise InsufficientFunds(f"Cannot gift {amount} points with a balance of {available}")

        debit = await self.ledger.append(
            scope_id=scope_id,
            participant_id=from_id,
            ledger=LedgerKind.POINTS,
            category=LedgerCategory.GIFT,
            amount=-amount,
            occurred_at=at,
            reference_id=to_id,
        )
        credit = await self.ledger.append(
            scope_id=scope_id,
            participant_id=to_id,
            ledger=LedgerKind.POINTS,
            category=LedgerCategory.GIFT,
            amount=amount,
            occurred_at=at,
            reference_id=from_id,
        )
        logger.info("points_gifted", scope_id=scope_id, from_id=from_id, to_id=to_id, amount=amount)
        return debit, credit

    # ========================================================================
    # Funds
    # ========================================================================

    async def load_funds(
        self, scope_id: str, participant_id: str, at: datetime, amount: float
    ) -> LedgerEvent:
        """Deposit into the scope's purchase funds, attributed to ``participant_id``."""
        if amount <= 0:
            raise ValidationError("Deposit amount must be positive")
        return await self.ledger.append(
            scope_id=scope_id,
            participant_id=participant_id,
            ledger=LedgerKind.FUNDS,
            category=LedgerCategory.DEPOSIT,
            amount=amount,
            occurred_at=at,
        )

    async def funds_balance(self, scope_id: str, at: datetime) -> Balance:
        amount = await self.ledger.scope_balance(scope_id, LedgerKind.FUNDS, at)
        return Balance(owner_id=scope_id, ledger=LedgerKind.FUNDS, amount=amount, as_of=at)

    async def debit_purchase(
        self, scope_id: str, buyer_id: str, cost: float, at: datetime, claim_id: str
    ) -> LedgerEvent:
        return await self.ledger.append(
            scope_id=scope_id,
            participant_id=buyer_id,
            ledger=LedgerKind.FUNDS,
            category=LedgerCategory.PURCHASE,
            amount=-cost,
            occurred_at=at,
            reference_id=claim_id,
        )

    async def refund_purchase(
        self, scope_id: str, buyer_id: str, cost: float, at: datetime, claim_id: str
    ) -> LedgerEvent:
        return await self.ledger.append(
            scope_id=scope_id,
            participant_id=buyer_id,
            ledger=LedgerKind.FUNDS,
            category=LedgerCategory.REFUND,
            amount=cost,
            occurred_at=at,
            reference_id=claim_id,
        )

    # ========================================================================
    # Karma
    # ========================================================================

    async def give_karma(
        self, scope_id: str, giver_id: str, receiver_id: str, at: datetime
    ) -> KarmaNomination:
        if giver_id == receiver_id:
            raise SelfTargetError("Cannot give karma to yourself")
        return await self.karma.give(scope_id, giver_id, receiver_id, at)

    async def karma_rankings(
        self, scope_id: str, start: datetime, end: datetime, now: datetime
    ) -> dict[str, float]:
        """
        Rank voting participants by the karma they received in ``[start, end)``.

        Every nomination is a full-strength preference for the receiver over
        the giver. Returns an empty mapping for fewer than two voters.
        """
        voters = sorted(p.id for p in await self.roster.voting_participants(scope_id, now))
        index = {participant_id: ix for ix, participant_id in enumerate(voters)}

        preferences = [
            DirectionalPreference(source_id=index[giver], target_id=index[receiver], value=1.0).normalize()
            for giver, receiver in await self.karma.nominations(scope_id, start, end)
            if giver in index and receiver in index
        ]

        try:
            result = self.engine.rank(list(index.values()), preferences, len(voters))
        except InsufficientEntities:
            return {}
        return {participant_id: result.weights[ix] for participant_id, ix in index.items()}

    async def generate_karma(self, scope_id: str, at: datetime) -> list[KarmaWinner]:
        """
        Reward last month's top karma receivers, once per month.

        Rewards are clipped so nobody exceeds the karma heart cap.
        """
        karma_time = dates.month_start(at) + self.params.karma_delay_hours * dates.HOUR
        if at < karma_time:
            return []

        key = dates.period_key(karma_time)
        if await self.ledger.has_scope_period_event(scope_id, LedgerKind.HEARTS, LedgerCategory.KARMA, key):
            return []

        prev_start = dates.prev_month_start(karma_time)
        this_start = dates.month_start(karma_time)
        nominations = await self.karma.nominations(scope_id, prev_start, this_start)
        voters = {p.id for p in await self.roster.voting_participants(scope_id, karma_time)}
        receivers = {receiver for _, receiver in nominations if receiver in voters}

        count = num_karma_winners(len(voters), len(receivers), self.params.karma_proportion)
        if count == 0:
            return []

        rankings = await self.karma_rankings(scope_id, prev_start, this_start, karma_time)
        ranked = sorted(
            ((pid, weight) for pid, weight in rankings.items() if pid in receivers),
            key=lambda item: (-item[1], item[0]),
        )

        winners = []
        for participant_id, weight in ranked[:count]:
            balance = await self.ledger.balance(participant_id, LedgerKind.HEARTS, karma_time)
            reward = max(0.0, min(KARMA_REWARD, self.params.karma_max_hearts - balance))
            event = await self.ledger.append_once(
                scope_id=scope_id,
                participant_id=participant_id,
                ledger=LedgerKind.HEARTS,
                category=LedgerCategory.KARMA,
                amount=reward,
                occurred_at=karma_time,
                period_key=key,
            )
            if event is not None:
                winners.append(KarmaWinner(participant_id=participant_id, weight=weight, reward=reward))

        logger.info("karma_generated", scope_id=scope_id, period=key, winners=len(winners))
        return winners
