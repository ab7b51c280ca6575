"""
Shared pytest configuration for dline tests.

Defaults to a throwaway SQLite file; set TEST_DATABASE_URL to run against
PostgreSQL.

SAFETY: This module REFUSES to run against any database whose name does not
contain the substring "test", so a misconfigured environment can never drop
the development or production schema.
"""

import os

# Must be set before the app modules read their environment
os.environ.setdefault("ENV", "test")
os.environ.setdefault("REDIS_ENABLED", "false")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")

import asyncio  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import AsyncClient, ASGITransport  # noqa: E402
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker  # noqa: E402
from sqlalchemy.pool import NullPool  # noqa: E402

from dline.database import db  # noqa: E402
from dline.database.db import Base, enable_sqlite_foreign_keys  # noqa: E402
from dline.services import defender_service, game_service, team_service  # noqa: E402
from dline.tests.factories import make_user  # noqa: E402


def _resolve_test_database_url() -> str:
    """Build the test database URL with safety checks.

    Raises ``RuntimeError`` if the resolved URL does not point to a database
    whose name contains "test".
    """
    url = os.getenv("TEST_DATABASE_URL", "sqlite+aiosqlite:///./dline_test.db")

    db_name = url.rsplit("/", 1)[-1].split("?")[0]
    if "test" not in db_name.lower():
        raise RuntimeError(
            f"\n{'=' * 70}\n"
            f"  SAFETY: Refusing to run tests against database '{db_name}'.\n"
            f"  The database name must contain 'test' to prevent accidental\n"
            f"  data loss in development or production databases.\n\n"
            f"  Resolved URL: {url}\n"
            f"{'=' * 70}"
        )
    return url


TEST_DATABASE_URL = _resolve_test_database_url()


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create the schema on a fresh engine and point the app's session factory at it."""
    # NullPool avoids connection reuse across event loops
    engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=NullPool)
    enable_sqlite_foreign_keys(engine)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    # Code that opens its own sessions (the socket route, get_db_session)
    # must use the same database as the fixtures
    test_session_maker = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )
    original_async_session_local = db.AsyncSessionLocal
    db.AsyncSessionLocal = test_session_maker

    yield engine

    db.AsyncSessionLocal = original_async_session_local
    await asyncio.sleep(0.01)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_engine):
    """Session for arranging and asserting test data."""
    async_session_maker = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)
    async with async_session_maker() as session:
        try:
            yield session
        finally:
            await session.rollback()
            await session.close()


@pytest_asyncio.fixture
async def client(test_engine):
    """HTTP client bound to the app; requests use the test database."""
    from dline.api.main import app

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture
async def owner(db_session):
    return await make_user(db_session, "owner")


@pytest_asyncio.fixture
async def team(db_session, owner):
    return await team_service.create_team(db_session, owner["id"], "Ring of Fire")


@pytest_asyncio.fixture
async def defenders(db_session, team):
    """Eight defenders, one more than a full line."""
    return [
        await defender_service.create_defender(db_session, team["id"], {"name": f"Defender {i}"})
        for i in range(1, 9)
    ]


@pytest_asyncio.fixture
async def game(db_session, owner, team):
    return await game_service.create_game(
        db_session,
        owner["id"],
        {"team_id": team["id"], "name": "Nationals Pool Play", "opponent": "Sockeye"},
    )
