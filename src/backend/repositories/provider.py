"""
Provider protocols for the read-only collaborators.

The engines only ever read the roster and the catalog through these
protocols, so any store that can answer them can stand in for the default
SQL repositories.

Usage:
    roster = get_roster_provider(db)
    voters = await roster.voting_participants(scope_id, now)
"""

from datetime import datetime
from typing import Any, Optional, Protocol, Sequence, runtime_checkable

from sqlalchemy.ext.asyncio import AsyncSession


# =============================================================================
# Provider Protocols (Interfaces)
# =============================================================================


@runtime_checkable
class RosterProviderProtocol(Protocol):
    """Protocol defining roster reads."""

    async def get_participant(self, participant_id: str) -> Optional[Any]: ...
    async def participants(self, scope_id: str, now: datetime) -> Sequence[Any]: ...
    async def voting_participants(self, scope_id: str, now: datetime) -> Sequence[Any]: ...
    async def eligible_participants(self, scope_id: str, now: datetime) -> Sequence[Any]: ...
    async def breaks(
        self, participant_id: str, start: datetime, end: datetime
    ) -> list[tuple[datetime, datetime]]: ...


@runtime_checkable
class CatalogProviderProtocol(Protocol):
    """Protocol defining catalog reads."""

    async def get_entity(self, entity_id: int) -> Optional[Any]: ...
    async def active_entities(self, scope_id: str) -> Sequence[Any]: ...


# =============================================================================
# Factory Functions
# =============================================================================


def get_roster_provider(db: AsyncSession) -> RosterProviderProtocol:
    """Get the default SQL-backed roster provider."""
    from repositories.roster_repository import RosterRepository

    return RosterRepository(db)


def get_catalog_provider(db: AsyncSession) -> CatalogProviderProtocol:
    """Get the default SQL-backed catalog provider."""
    from repositories.catalog_repository import CatalogRepository

    return CatalogRepository(db)
