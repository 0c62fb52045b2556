"""
Scope repository for database operations.
"""

from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from models.scope import Scope


class ScopeRepository:
    """Repository for scope database operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_id(self, scope_id: str) -> Optional[Scope]:
        result = await self.db.execute(select(Scope).where(Scope.id == scope_id))
        return result.scalar_one_or_none()

    async def ensure(self, scope_id: str, name: Optional[str] = None) -> Scope:
        """Get the scope, creating it if it does not exist yet."""
        scope = await self.get_by_id(scope_id)
        if scope is None:
            scope = Scope(id=scope_id, name=name, config={})
            self.db.add(scope)
            await self.db.flush()
        return scope

    async def update_config(self, scope_id: str, config: dict[str, Any]) -> Optional[Scope]:
        """Merge ``config`` into the stored document (keys in ``config`` win)."""
        scope = await self.get_by_id(scope_id)
        if scope is None:
            return None
        # Reassign so the JSON column is flagged dirty
        scope.config = {**(scope.config or {}), **config}
        await self.db.flush()
        return scope
