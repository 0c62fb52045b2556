"""
Catalog repository: ranked entities.

Default SQL-backed catalog provider. Entities are never hard-deleted;
deactivation hides them from rankings and accrual.
"""

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import and_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from models.entity import RankedEntity


class CatalogRepository:
    """Repository for entity database operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_entity(self, entity_id: int) -> Optional[RankedEntity]:
        result = await self.db.execute(select(RankedEntity).where(RankedEntity.id == entity_id))
        return result.scalar_one_or_none()

    async def get_by_name(self, scope_id: str, name: str) -> Optional[RankedEntity]:
        result = await self.db.execute(
            select(RankedEntity).where(
                and_(RankedEntity.scope_id == scope_id, RankedEntity.name == name)
            )
        )
        return result.scalar_one_or_none()

    async def active_entities(self, scope_id: str) -> list[RankedEntity]:
        result = await self.db.execute(
            select(RankedEntity)
            .where(and_(RankedEntity.scope_id == scope_id, RankedEntity.active.is_(True)))
            .order_by(RankedEntity.id)
        )
        return list(result.scalars().all())

    async def add_entity(
        self,
        scope_id: str,
        name: str,
        created_at: datetime,
        attributes: Optional[dict[str, Any]] = None,
    ) -> RankedEntity:
        """Add an entity, or reactivate the existing one with the same name."""
        entity = await self.get_by_name(scope_id, name)
        if entity is None:
            entity = RankedEntity(
                scope_id=scope_id,
                name=name,
                active=True,
                attributes=attributes or {},
                created_at=created_at,
            )
            self.db.add(entity)
        else:
            entity.active = True
            if attributes is not None:
                entity.attributes = attributes
        await self.db.flush()
        return entity

    async def deactivate(self, scope_id: str, names: list[str]) -> int:
        result = await self.db.execute(
            update(RankedEntity)
            .where(and_(RankedEntity.scope_id == scope_id, RankedEntity.name.in_(names)))
            .values(active=False)
        )
        return getattr(result, "rowcount", 0) or 0
