"""
Claim resolution: poll-gated claims, challenges and purchases.

Every request opens a poll and stays OPEN until the poll has closed and
``resolve`` decides it. Resolution is a compare-and-set on
``resolved_at IS NULL``, so a request is decided exactly once however many
workers race on it.

What differs between kinds (which checks run before opening, how long the
poll runs, how many votes are needed, what happens to the ledgers) lives in
a ``RequestPolicy`` per kind.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Optional, Protocol, Sequence

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import (
    AlreadyResolved,
    ConflictingRequest,
    HearthError,
    InsufficientFunds,
    NotFound,
    PollOpen,
    SelfTargetError,
    ValidationError,
    ZeroValueClaim,
)
from core.parameters import ScopeParameters
from models.claim import Claim, ClaimKind
from models.ledger import LedgerKind
from repositories.claim_repository import ClaimRepository
from repositories.ledger_repository import LedgerRepository
from repositories.provider import (
    CatalogProviderProtocol,
    RosterProviderProtocol,
    get_catalog_provider,
    get_roster_provider,
)
from schemas.claim import BatchResolution, ResolutionOutcome
from services.accrual_service import AccrualService
from services.ledger_service import LedgerService
from services.poll_service import PollService

logger = structlog.get_logger(__name__)


@dataclass
class OpenRequest:
    """Everything the pre-open checks may look at."""

    scope_id: str
    kind: ClaimKind
    initiator_id: str
    target: str
    requested_value: float
    now: datetime
    details: dict[str, Any] = field(default_factory=dict)


# =============================================================================
# Rules
# =============================================================================


class RequestRule(Protocol):
    async def check(self, request: OpenRequest) -> None: ...


class NoSelfTarget:
    async def check(self, request: OpenRequest) -> None:
        if request.initiator_id == request.target:
            raise SelfTargetError(f"{request.kind.value} cannot target its initiator")


class NonZeroValue:
    async def check(self, request: OpenRequest) -> None:
        if request.requested_value <= 0:
            if request.kind == ClaimKind.CLAIM:
                raise ZeroValueClaim("Cannot claim a zero-value entity")
            raise ValidationError(f"{request.kind.value} value must be positive")


class SingleOpenRequest:
    """At most one open request per kind between the same initiator and target."""

    def __init__(self, claims: ClaimRepository):
        self.claims = claims

    async def check(self, request: OpenRequest) -> None:
        existing = await self.claims.find_open(
            request.scope_id, request.kind, request.initiator_id, request.target
        )
        if existing is not None:
            raise ConflictingRequest(f"Open {request.kind.value} {existing.id} already exists")


class SufficientFunds:
    """A purchase must be covered by the scope's funds at opening time."""

    def __init__(self, ledger: LedgerRepository):
        self.ledger = ledger

    async def check(self, request: OpenRequest) -> None:
        available = await self.ledger.scope_balance(request.scope_id, LedgerKind.FUNDS, request.now)
        if available < request.requested_value:
            raise InsufficientFunds(
                f"Purchase of {request.requested_value} exceeds available funds {available}"
            )


# =============================================================================
# Policies
# =============================================================================


class RequestPolicy:
    """Per-kind behaviour; subclasses override the hooks they need."""

    kind: ClaimKind

    def __init__(self, service: "ClaimService"):
        self.service = service
        self.params = service.params

    def rules(self) -> Sequence[RequestRule]:
        return [NoSelfTarget(), NonZeroValue(), SingleOpenRequest(self.service.claims)]

    def poll_duration(self) -> timedelta:
        raise NotImplementedError

    async def min_votes(self, claim: Claim, now: datetime) -> int:
        raise NotImplementedError

    async def after_open(self, claim: Claim) -> None:
        pass

    async def resolved_value(self, claim: Claim, valid: bool) -> float:
        # Challenges cost the loser either way; purchases keep their price
        return claim.requested_value

    async def after_resolve(self, claim: Claim, valid: bool, value: float, now: datetime) -> None:
        pass


class ClaimPolicy(RequestPolicy):
    """Chore claims: value is re-read from accrual, fixed quorum."""

    kind = ClaimKind.CLAIM

    def poll_duration(self) -> timedelta:
        return timedelta(hours=self.params.claim_poll_hours)

    async def min_votes(self, claim: Claim, now: datetime) -> int:
        return self.params.claim_min_votes

    async def resolved_value(self, claim: Claim, valid: bool) -> float:
        if not valid:
            return 0.0
        return await self.service.accrual.current_value(
            int(claim.target), claim.opened_at, exclude_claim_id=claim.id
        )


class ChallengePolicy(RequestPolicy):
    """Heart challenges: quorum grows when the target would become critical."""

    kind = ClaimKind.CHALLENGE

    def poll_duration(self) -> timedelta:
        return timedelta(hours=self.params.challenge_poll_hours)

    async def min_votes(self, claim: Claim, now: datetime) -> int:
        voters = await self.service.roster.voting_participants(claim.scope_id, now)
        balance = await self.service.ledger.balance(claim.target, now)
        critical = balance - claim.requested_value <= self.params.hearts_critical
        fraction = self.params.challenge_critical_quorum if critical else self.params.challenge_quorum
        return math.ceil(len(voters) * fraction)

    async def after_resolve(self, claim: Claim, valid: bool, value: float, now: datetime) -> None:
        # An upheld challenge costs the target, a rejected one the challenger
        loser = claim.target if valid else claim.initiator_id
        await self.service.ledger.apply_challenge(claim.scope_id, loser, value, now, claim.id)


class BuyPolicy(RequestPolicy):
    """Purchases: funds are held at opening and returned if rejected."""

    kind = ClaimKind.BUY

    def rules(self) -> Sequence[RequestRule]:
        return [NoSelfTarget(), NonZeroValue(), SufficientFunds(self.service.ledger.ledger)]

    def poll_duration(self) -> timedelta:
        return timedelta(hours=self.params.buy_poll_hours)

    async def min_votes(self, claim: Claim, now: datetime) -> int:
        return math.ceil(claim.requested_value / self.params.buy_vote_unit)

    async def after_open(self, claim: Claim) -> None:
        await self.service.ledger.debit_purchase(
            claim.scope_id, claim.initiator_id, claim.requested_value, claim.opened_at, claim.id
        )

    async def after_resolve(self, claim: Claim, valid: bool, value: float, now: datetime) -> None:
        if not valid:
            await self.service.ledger.refund_purchase(
                claim.scope_id, claim.initiator_id, claim.requested_value, now, claim.id
            )


POLICIES: dict[ClaimKind, type[RequestPolicy]] = {
    ClaimKind.CLAIM: ClaimPolicy,
    ClaimKind.CHALLENGE: ChallengePolicy,
    ClaimKind.BUY: BuyPolicy,
}


# =============================================================================
# Service
# =============================================================================


class ClaimService:
    """Opens, resolves and fulfils poll-gated requests."""

    def __init__(
        self,
        db: AsyncSession,
        params: ScopeParameters,
        roster: Optional[RosterProviderProtocol] = None,
        catalog: Optional[CatalogProviderProtocol] = None,
    ):
        self.db = db
        self.params = params
        self.roster = roster or get_roster_provider(db)
        self.catalog = catalog or get_catalog_provider(db)
        self.claims = ClaimRepository(db)
        self.polls = PollService(db, params.vote_salt)
        self.accrual = AccrualService(db, params, roster=self.roster, catalog=self.catalog)
        self.ledger = LedgerService(db, params, roster=self.roster)
        self.policies = {kind: policy(self) for kind, policy in POLICIES.items()}

    async def get(self, claim_id: str) -> Claim:
        claim = await self.claims.get_by_id(claim_id)
        if claim is None:
            raise NotFound(f"Request {claim_id} not found")
        return claim

    # ========================================================================
    # Opening
    # ========================================================================

    async def open(
        self,
        scope_id: str,
        kind: ClaimKind,
        initiator_id: str,
        target: str,
        requested_value: float,
        now: datetime,
        details: Optional[dict[str, Any]] = None,
    ) -> Claim:
        """Run the kind's checks, open a poll and record the request."""
        policy = self.policies[kind]
        request = OpenRequest(
            scope_id=scope_id,
            kind=kind,
            initiator_id=initiator_id,
            target=target,
            requested_value=requested_value,
            now=now,
            details=details or {},
        )
        for rule in policy.rules():
            await rule.check(request)

        poll = await self.polls.create(now, policy.poll_duration())
        claim = await self.claims.create(
            scope_id=scope_id,
            kind=kind,
            initiator_id=initiator_id,
            target=target,
            requested_value=requested_value,
            poll_id=poll.id,
            opened_at=now,
            details=request.details,
        )
        await policy.after_open(claim)

        logger.info(
            "request_opened",
            scope_id=scope_id,
            kind=kind.value,
            claim_id=claim.id,
            poll_id=poll.id,
            requested_value=requested_value,
        )
        return claim

    async def open_claim(
        self, scope_id: str, participant_id: str, entity_id: int, now: datetime
    ) -> Claim:
        """Claim the value currently accrued on an entity."""
        entity = await self.catalog.get_entity(entity_id)
        if entity is None or entity.scope_id != scope_id or not entity.active:
            raise NotFound(f"Entity {entity_id} not found in scope {scope_id}")

        value = await self.accrual.current_value(entity_id, now)
        return await self.open(scope_id, ClaimKind.CLAIM, participant_id, str(entity_id), value, now)

    async def open_challenge(
        self,
        scope_id: str,
        challenger_id: str,
        challengee_id: str,
        hearts: float,
        now: datetime,
        circumstance: Optional[str] = None,
    ) -> Claim:
        details = {"circumstance": circumstance} if circumstance else {}
        return await self.open(
            scope_id, ClaimKind.CHALLENGE, challenger_id, challengee_id, hearts, now, details
        )

    async def open_buy(
        self,
        scope_id: str,
        buyer_id: str,
        item: str,
        cost: float,
        now: datetime,
        details: Optional[dict[str, Any]] = None,
    ) -> Claim:
        return await self.open(scope_id, ClaimKind.BUY, buyer_id, item, cost, now, details)

    async def vote(self, claim_id: str, voter_id: str, now: datetime, value: bool) -> None:
        claim = await self.get(claim_id)
        await self.polls.submit_vote(claim.poll_id, voter_id, now, value)

    # ========================================================================
    # Resolution
    # ========================================================================

    async def resolve(self, claim_id: str, now: datetime) -> ResolutionOutcome:
        """
        Decide a request whose poll has closed.

        Raises PollOpen before the poll's end and AlreadyResolved if the
        request was decided already, including by a concurrent caller.
        """
        claim = await self.get(claim_id)
        if claim.resolved_at is not None:
            raise AlreadyResolved(f"Request {claim_id} was resolved at {claim.resolved_at.isoformat()}")

        poll = await self.polls.get(claim.poll_id)
        if now < poll.end_time:
            raise PollOpen(f"Poll {poll.id} closes at {poll.end_time.isoformat()}")

        kind = ClaimKind(claim.kind)
        policy = self.policies[kind]

        counts = await self.polls.result_counts(poll.id)
        min_votes = await policy.min_votes(claim, now)
        valid = counts.yays > counts.nays and counts.yays >= min_votes
        value = await policy.resolved_value(claim, valid)

        if not await self.claims.mark_resolved(claim.id, now, valid, value):
            raise AlreadyResolved(f"Request {claim_id} was resolved concurrently")

        await policy.after_resolve(claim, valid, value, now)

        logger.info(
            "request_resolved",
            claim_id=claim.id,
            kind=kind.value,
            valid=valid,
            value=value,
            yays=counts.yays,
            nays=counts.nays,
            min_votes=min_votes,
        )
        return ResolutionOutcome(
            claim_id=claim.id,
            kind=kind,
            valid=valid,
            value=value,
            yays=counts.yays,
            nays=counts.nays,
            min_votes=min_votes,
            resolved_at=now,
        )

    async def resolve_batch(
        self, scope_id: str, now: datetime, kind: Optional[ClaimKind] = None
    ) -> BatchResolution:
        """
        Resolve every request of the scope whose poll closed by ``now``.

        Each request runs in its own savepoint; a request lost to a
        concurrent resolver is skipped and any other failure is logged
        without affecting the rest of the batch.
        """
        batch = BatchResolution()
        for claim_id in await self.claims.resolvable_ids(scope_id, now, kind):
            try:
                async with self.db.begin_nested():
                    batch.resolved.append(await self.resolve(claim_id, now))
            except AlreadyResolved:
                logger.debug("request_resolution_skipped", claim_id=claim_id)
                batch.skipped.append(claim_id)
            except HearthError as e:
                logger.error("request_resolution_failed", claim_id=claim_id, error=str(e))
                batch.failed.append(claim_id)
        return batch

    # ========================================================================
    # Purchases
    # ========================================================================

    async def fulfill(self, claim_id: str, fulfilled_by: str, now: datetime) -> Claim:
        """Mark an approved purchase as handed over."""
        claim = await self.get(claim_id)
        if claim.kind != ClaimKind.BUY.value or claim.valid is not True:
            raise ValidationError(f"Request {claim_id} is not an approved purchase")
        if not await self.claims.mark_fulfilled(claim_id, fulfilled_by, now):
            raise AlreadyResolved(f"Purchase {claim_id} was already fulfilled")
        await self.db.refresh(claim)
        logger.info("purchase_fulfilled", claim_id=claim_id, fulfilled_by=fulfilled_by)
        return claim

    async def unfulfilled_purchases(self, scope_id: str) -> list[Claim]:
        return await self.claims.unfulfilled_purchases(scope_id)
