"""Service test fixtures: async DB, fake collaborators, FastAPI test client.

Invariants:
    - Each test owns a private in-memory SQLite database with the full schema
    - get_db, get_identity_client and get_ledger_client are overridden for route tests
    - db_manager is patched so the readiness probe sees the test database

Design Decisions:
    - SQLite in-memory: fast, no external dependency; PostgreSQL-only features are not exercised
"""

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from httpx import ASGITransport, AsyncClient

from postboard.db.base import Base
from postboard.infrastructure.collaborators import get_identity_client, get_ledger_client
from postboard.infrastructure.database import (
    DatabaseSessionManager, build_engine, get_db,
)
import postboard.infrastructure.database as db_module
from postboard.main import app
from postboard.services.post_lifecycle import PostLifecycle

from tests.services.fake_collaborators import FakeIdentity, FakeLedger

TOKENS = {"T-alice": 1, "T-bob": 2, "T-carol": 3}
USERS = {1: "alice", 2: "bob", 3: "carol"}


@pytest.fixture
async def test_engine():
    engine = build_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
async def test_session_factory(test_engine):
    return async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False,
    )


@pytest.fixture
async def test_db(test_session_factory):
    async with test_session_factory() as session:
        yield session


@pytest.fixture
def identity():
    return FakeIdentity(TOKENS, USERS)


@pytest.fixture
def ledger():
    return FakeLedger(totals={1: 500, 2: 40})


@pytest.fixture
def lifecycle(test_db, identity, ledger):
    return PostLifecycle(test_db, identity, ledger)


@pytest.fixture
async def client(test_engine, test_session_factory, identity, ledger):
    """FastAPI test client with DB and collaborators overridden."""
    async def override_get_db():
        async with test_session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_identity_client] = lambda: identity
    app.dependency_overrides[get_ledger_client] = lambda: ledger

    original_manager = db_module.db_manager
    fake_manager = DatabaseSessionManager.__new__(DatabaseSessionManager)
    fake_manager.engine = test_engine
    fake_manager._session_factory = test_session_factory
    db_module.db_manager = fake_manager

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test",
    ) as c:
        yield c

    app.dependency_overrides.clear()
    db_module.db_manager = original_manager
