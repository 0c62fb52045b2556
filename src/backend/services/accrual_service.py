"""
Accrual service: periodic emission of claimable value.

Each emission credits every active entity with a share of a pool sized by
the number of eligible participants and the time since the previous
emission. An entity's current value is what has been credited to it since
it was last claimed.
"""

from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from core import dates
from core.exceptions import InsufficientEntities, NotFound
from core.parameters import ScopeParameters
from models.value_event import ValueEvent
from repositories.claim_repository import ClaimRepository
from repositories.provider import (
    CatalogProviderProtocol,
    RosterProviderProtocol,
    get_catalog_provider,
    get_roster_provider,
)
from repositories.value_event_repository import ValueEventRepository
from schemas.ranking import EntityValue
from services.preference_service import PreferenceService

logger = structlog.get_logger(__name__)

# Lower bound for entities that were never claimed
EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class AccrualService:
    """Emits value events and answers "what is this entity worth now"."""

    def __init__(
        self,
        db: AsyncSession,
        params: ScopeParameters,
        roster: Optional[RosterProviderProtocol] = None,
        catalog: Optional[CatalogProviderProtocol] = None,
    ):
        self.params = params
        self.roster = roster or get_roster_provider(db)
        self.catalog = catalog or get_catalog_provider(db)
        self.value_events = ValueEventRepository(db)
        self.claims = ClaimRepository(db)
        self.preferences = PreferenceService(db, params, roster=self.roster, catalog=self.catalog)

    # ========================================================================
    # Emission
    # ========================================================================

    async def interval_scalar(self, scope_id: str, now: datetime) -> float:
        """
        Fraction of a month elapsed since the last emission.

        Only whole hours count. The first emission of a scope covers the
        bootstrap window instead.
        """
        last = await self.value_events.last_valued_at(scope_id)
        if last is None:
            last = now - self.params.bootstrap_hours * dates.HOUR

        hours = dates.whole_hours_between(last, now)
        if hours < 1:
            return 0.0
        return dates.month_fraction(last, last + hours * dates.HOUR)

    async def eligible_count(self, scope_id: str, now: datetime) -> int:
        return len(await self.roster.eligible_participants(scope_id, now))

    async def emit(
        self,
        scope_id: str,
        now: datetime,
        per_participant_budget: Optional[float] = None,
    ) -> list[ValueEvent]:
        """
        Credit every active entity with its ranked share of this interval's pool.

        Returns the appended events; nothing is written when less than an
        hour has passed since the last emission.
        """
        scalar = await self.interval_scalar(scope_id, now)
        if scalar == 0:
            return []

        budget = self.params.points_per_participant if per_participant_budget is None else per_participant_budget
        eligible = await self.eligible_count(scope_id, now)
        pool = eligible * budget * scalar * self.params.inflation_factor

        ranking = await self.preferences.current_rankings(scope_id, now)
        snapshot_id = str(uuid4())
        events = [
            ValueEvent(
                scope_id=scope_id,
                entity_id=entity_id,
                valued_at=now,
                amount=weight * pool,
                snapshot_id=snapshot_id,
                ranking=weight,
                participant_count=ranking.participant_count,
            )
            for entity_id, weight in ranking.ordered()
        ]
        await self.value_events.add_many(events)

        logger.info(
            "value_emitted",
            scope_id=scope_id,
            snapshot_id=snapshot_id,
            pool=pool,
            eligible=eligible,
            entities=len(events),
            converged=ranking.converged,
        )
        return events

    # ========================================================================
    # Current values
    # ========================================================================

    async def current_value(
        self, entity_id: int, now: datetime, exclude_claim_id: Optional[str] = None
    ) -> float:
        """Value credited to an entity after its latest open or upheld claim."""
        claim = await self.claims.latest_unrejected_claim(entity_id, now, exclude_id=exclude_claim_id)
        since = claim.opened_at if claim is not None else EPOCH
        return await self.value_events.sum_between(entity_id, since, now)

    async def current_values(self, scope_id: str, now: datetime) -> list[EntityValue]:
        entities = await self.catalog.active_entities(scope_id)
        return [
            EntityValue(entity_id=e.id, name=e.name, value=await self.current_value(e.id, now))
            for e in entities
        ]

    async def updated_values(self, scope_id: str, now: datetime) -> list[EntityValue]:
        """
        Current values including an emission at ``now``, highest first.

        Values are read before emitting so the new events are added exactly
        once. With fewer than two active entities nothing is emitted.
        """
        values = await self.current_values(scope_id, now)
        try:
            events = await self.emit(scope_id, now)
        except InsufficientEntities:
            logger.debug("emission_skipped", scope_id=scope_id, reason="insufficient_entities")
            events = []
        emitted = {event.entity_id: event.amount for event in events}
        updated = [
            v.model_copy(update={"value": v.value + emitted.get(v.entity_id, 0.0)}) for v in values
        ]
        return sorted(updated, key=lambda v: (-v.value, v.entity_id))

    # ========================================================================
    # Participation
    # ========================================================================

    async def active_fraction(self, participant_id: str, reference: datetime) -> float:
        """Share of ``reference``'s month that the participant was not on a break."""
        participant = await self.roster.get_participant(participant_id)
        if participant is None:
            raise NotFound(f"Participant {participant_id} not found")

        first = dates.month_start(reference)
        breaks = await self.roster.breaks(participant_id, first, dates.next_month_start(reference))
        return dates.active_fraction(breaks, reference, participant.active_at)
