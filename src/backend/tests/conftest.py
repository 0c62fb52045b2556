"""
Pytest fixtures for Hearth backend tests.
"""

import os
from collections.abc import AsyncGenerator
from datetime import datetime, timezone
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

# Set test environment variables before importing settings
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-testing")
os.environ.setdefault("POSTGRES_PASSWORD", "test-password")
os.environ.setdefault("POSTGRES_HOST", "localhost")
os.environ.setdefault("POSTGRES_DB", "hearth_test")
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DEBUG", "false")

from sqlalchemy import event  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

SCOPE_ID = "house-1"
START = datetime(2024, 1, 1, tzinfo=timezone.utc)


def utc(*args: int) -> datetime:
    """Shorthand for an aware UTC datetime."""
    return datetime(*args, tzinfo=timezone.utc)


@pytest.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """In-memory SQLite engine with every table created."""
    import models  # noqa: F401
    from db.base import Base

    test_engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # pysqlite's own transaction handling breaks SAVEPOINT; let SQLAlchemy emit BEGIN
    @event.listens_for(test_engine.sync_engine, "connect")
    def _on_connect(dbapi_connection: Any, connection_record: Any) -> None:
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(test_engine.sync_engine, "begin")
    def _on_begin(conn: Any) -> None:
        conn.exec_driver_sql("BEGIN")

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield test_engine
    await test_engine.dispose()


@pytest.fixture
async def db(engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    """Session bound to the in-memory engine."""
    session_maker = async_sessionmaker(engine, expire_on_commit=False)
    async with session_maker() as session:
        yield session


@pytest.fixture
def params() -> Any:
    """Parameters resolved from the test settings."""
    from core.parameters import resolve_parameters

    return resolve_parameters()


@pytest.fixture
async def household(db: AsyncSession) -> dict[str, Any]:
    """
    A scope with three voting participants and three entities.

    Everyone is active from ``START``.
    """
    from repositories.catalog_repository import CatalogRepository
    from repositories.roster_repository import RosterRepository
    from repositories.scope_repository import ScopeRepository

    await ScopeRepository(db).ensure(SCOPE_ID, name="Test House")

    roster = RosterRepository(db)
    participants = [await roster.activate(SCOPE_ID, pid, START) for pid in ("alice", "bob", "carol")]

    catalog = CatalogRepository(db)
    entities = [
        await catalog.add_entity(SCOPE_ID, name, created_at=START) for name in ("dishes", "sweeping", "trash")
    ]
    await db.flush()

    return {"scope_id": SCOPE_ID, "participants": participants, "entities": entities}


@pytest.fixture
def mock_db_session() -> AsyncMock:
    """Create mock database session."""
    session = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.close = AsyncMock()
    session.execute = AsyncMock()
    session.flush = AsyncMock()
    session.add = MagicMock()
    session.add_all = MagicMock()
    return session


@pytest.fixture
def conflicting_savepoint(mock_db_session: AsyncMock) -> AsyncMock:
    """Session whose savepoints fail with a unique-constraint violation."""
    from sqlalchemy.exc import IntegrityError

    class _Savepoint:
        async def __aenter__(self) -> "_Savepoint":
            return self

        async def __aexit__(self, *exc_info: Any) -> None:
            raise IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed"))

    mock_db_session.begin_nested = MagicMock(return_value=_Savepoint())
    return mock_db_session
