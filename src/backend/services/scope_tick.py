"""
Scope tick: the single entry point for periodic work.

Nothing in this package schedules itself. A caller (cron, a queue worker,
a chat-platform event) invokes ``ScopeTick.run`` for a scope with the
current time, and every step is idempotent for that time, so running it
twice or from two workers does not double-apply anything.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import InsufficientEntities
from core.parameters import ScopeParameters, resolve_parameters
from models.claim import ClaimKind
from repositories.provider import (
    CatalogProviderProtocol,
    RosterProviderProtocol,
    get_catalog_provider,
    get_roster_provider,
)
from repositories.scope_repository import ScopeRepository
from schemas.claim import BatchResolution
from schemas.ledger import KarmaWinner
from services.accrual_service import AccrualService
from services.claim_service import ClaimService
from services.ledger_service import LedgerService

logger = structlog.get_logger(__name__)


@dataclass
class TickReport:
    """What one tick did, for logging and tests."""

    scope_id: str
    now: datetime
    resolutions: dict[str, BatchResolution] = field(default_factory=dict)
    emitted: int = 0
    initialised: int = 0
    regenerated: int = 0
    penalised: int = 0
    karma: list[KarmaWinner] = field(default_factory=list)


class ScopeTick:
    """Runs resolution, emission and the monthly ledger jobs for one scope."""

    def __init__(
        self,
        db: AsyncSession,
        params: Optional[ScopeParameters] = None,
        roster: Optional[RosterProviderProtocol] = None,
        catalog: Optional[CatalogProviderProtocol] = None,
    ):
        self.db = db
        self.params = params
        self.roster = roster or get_roster_provider(db)
        self.catalog = catalog or get_catalog_provider(db)
        self.scopes = ScopeRepository(db)

    async def _parameters(self, scope_id: str) -> ScopeParameters:
        if self.params is not None:
            return self.params
        scope = await self.scopes.get_by_id(scope_id)
        return resolve_parameters(scope.config if scope is not None else None)

    async def run(self, scope_id: str, now: datetime) -> TickReport:
        params = await self._parameters(scope_id)
        claims = ClaimService(self.db, params, roster=self.roster, catalog=self.catalog)
        accrual = AccrualService(self.db, params, roster=self.roster, catalog=self.catalog)
        ledger = LedgerService(self.db, params, roster=self.roster)

        report = TickReport(scope_id=scope_id, now=now)

        for kind in ClaimKind:
            report.resolutions[kind.value] = await claims.resolve_batch(scope_id, now, kind)

        try:
            report.emitted = len(await accrual.emit(scope_id, now))
        except InsufficientEntities:
            logger.debug("emission_skipped", scope_id=scope_id, reason="insufficient_entities")

        for participant in await self.roster.voting_participants(scope_id, now):
            if await ledger.initialise(scope_id, participant.id, now) is not None:
                report.initialised += 1
            if await ledger.regenerate(scope_id, participant.id, now) is not None:
                report.regenerated += 1
            if await ledger.penalty(scope_id, participant.id, now) is not None:
                report.penalised += 1

        report.karma = await ledger.generate_karma(scope_id, now)

        logger.info(
            "scope_tick_completed",
            scope_id=scope_id,
            resolved=sum(len(b.resolved) for b in report.resolutions.values()),
            emitted=report.emitted,
            initialised=report.initialised,
            regenerated=report.regenerated,
            penalised=report.penalised,
            karma_winners=len(report.karma),
        )
        return report
