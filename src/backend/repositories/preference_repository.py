"""
Preference repository for database operations.

Preferences arrive already normalized (canonical pair order); the unique
constraint keeps exactly one row per participant and pair.
"""

from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import and_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from core.exceptions import ConcurrencyConflict
from models.entity import RankedEntity
from models.participant import Participant
from models.preference import Preference
from schemas.preference import CanonicalPreference


class PreferenceRepository:
    """Repository for preference database operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _get(
        self, scope_id: str, participant_id: str, alpha_id: int, beta_id: int
    ) -> Optional[Preference]:
        result = await self.db.execute(
            select(Preference).where(
                and_(
                    Preference.scope_id == scope_id,
                    Preference.participant_id == participant_id,
                    Preference.alpha_entity_id == alpha_id,
                    Preference.beta_entity_id == beta_id,
                )
            )
        )
        return result.scalar_one_or_none()

    async def upsert(self, scope_id: str, preference: CanonicalPreference) -> Preference:
        """Insert or overwrite one preference (last write wins)."""
        assert preference.participant_id is not None, "Preference must name a participant"

        existing = await self._get(
            scope_id, preference.participant_id, preference.alpha_id, preference.beta_id
        )
        if existing is not None:
            existing.value = preference.value
            await self.db.flush()
            return existing

        row = Preference(
            scope_id=scope_id,
            participant_id=preference.participant_id,
            alpha_entity_id=preference.alpha_id,
            beta_entity_id=preference.beta_id,
            value=preference.value,
        )
        try:
            async with self.db.begin_nested():
                self.db.add(row)
        except IntegrityError:
            # A concurrent writer inserted the same pair first
            existing = await self._get(
                scope_id, preference.participant_id, preference.alpha_id, preference.beta_id
            )
            if existing is None:
                raise ConcurrencyConflict(
                    f"Preference {preference.alpha_id}/{preference.beta_id} changed during write"
                )
            existing.value = preference.value
            await self.db.flush()
            return existing
        return row

    async def set_preferences(
        self, scope_id: str, preferences: Iterable[CanonicalPreference]
    ) -> list[Preference]:
        return [await self.upsert(scope_id, p) for p in preferences]

    async def get_preferences(
        self, scope_id: str, participant_id: Optional[str] = None
    ) -> list[CanonicalPreference]:
        query = select(Preference).where(Preference.scope_id == scope_id)
        if participant_id is not None:
            query = query.where(Preference.participant_id == participant_id)
        result = await self.db.execute(query.order_by(Preference.id))
        return [self._to_schema(p) for p in result.scalars().all()]

    async def get_active_preferences(self, scope_id: str, now: datetime) -> list[CanonicalPreference]:
        """Preferences whose participant is active and whose entities are both active."""
        alpha = aliased(RankedEntity)
        beta = aliased(RankedEntity)
        result = await self.db.execute(
            select(Preference)
            .join(alpha, Preference.alpha_entity_id == alpha.id)
            .join(beta, Preference.beta_entity_id == beta.id)
            .join(Participant, Preference.participant_id == Participant.id)
            .where(
                and_(
                    Preference.scope_id == scope_id,
                    Participant.active_at <= now,
                    alpha.active.is_(True),
                    beta.active.is_(True),
                )
            )
            .order_by(Preference.id)
        )
        return [self._to_schema(p) for p in result.scalars().all()]

    @staticmethod
    def _to_schema(row: Preference) -> CanonicalPreference:
        return CanonicalPreference(
            participant_id=row.participant_id,
            alpha_id=row.alpha_entity_id,
            beta_id=row.beta_entity_id,
            value=row.value,
        )
