"""
Centralized Test Configuration.
"""

from types import SimpleNamespace

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from jeepney_backend.app.main import app
from jeepney_backend.app.db.session import get_db, Base
from jeepney_backend.app.core.redis_client import get_redis
import jeepney_backend.app.core.redis_client as redis_client_module
from jeepney_backend.app.models.route import Route
from jeepney_backend.app.models.checkpoint import CheckpointAlias
from jeepney_backend.app.models.driver import Driver
from jeepney_backend.app.services.checkpoint_names import normalize_name
from jeepney_backend.seed_routes import LINE_CHECKPOINTS, ALIASES, DRIVERS, build_checkpoints

# Setup In-Memory Test Database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# Event handler to enable foreign keys for SQLite
from sqlalchemy import event
from sqlalchemy.pool import Pool

@event.listens_for(Pool, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign key constraints for SQLite."""
    if 'sqlite' in str(type(dbapi_conn)):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


class TestDatabase:
    """Engine and session factory, rebuilt for every test on that test's event loop."""
    __test__ = False

    engine = None
    session_factory = None


test_db = TestDatabase()


# Mock Redis for reliability in CI/CD
class MockRedis:
    def __init__(self):
        self.store = {}
        self._closed = False

    async def ping(self):
        if self._closed:
            return False
        return True

    async def get(self, key):
        if self._closed:
            return None
        return self.store.get(key)

    async def set(self, key, value, ex=None):
        if self._closed:
            return False
        self.store[key] = value
        return True

    async def incr(self, key):
        if self._closed:
            return 0
        self.store[key] = int(self.store.get(key) or 0) + 1
        return self.store[key]

    async def delete(self, key):
        if self._closed:
            return 0
        if key in self.store:
            del self.store[key]
            return 1
        return 0

    async def exists(self, key):
        if self._closed:
            return 0
        return 1 if key in self.store else 0

    async def flushdb(self):
        if not self._closed:
            self.store = {}

    async def aclose(self):
        self._closed = True
        self.store = {}


# Redis Fixture (Session Scope)
@pytest.fixture(scope="session")
def mock_redis():
    return MockRedis()

@pytest.fixture(scope="session", autouse=True)
def apply_overrides(mock_redis):
    """Apply overrides once for the session.
    Global override is safer here than per-test override to avoid app state flux.
    """

    # Patch the global redis client used by the health check
    original_client = redis_client_module.redis_client
    redis_client_module.redis_client = mock_redis

    async def override_get_db():
        async with test_db.session_factory() as session:
            yield session

    async def override_get_redis():
        return mock_redis

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = override_get_redis
    yield

    # Restore and clear
    app.dependency_overrides = {}
    redis_client_module.redis_client = original_client

@pytest.fixture
async def setup_database(mock_redis):
    """Create tables before each test function and drop after."""
    test_db.engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    test_db.session_factory = async_sessionmaker(
        test_db.engine, class_=AsyncSession, expire_on_commit=False
    )
    async with test_db.engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    mock_redis._closed = False
    await mock_redis.flushdb()

    yield

    async with test_db.engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await test_db.engine.dispose()

@pytest.fixture
async def client(setup_database):
    """Async client for testing."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

# Shared session for fixture data creation
@pytest.fixture
async def db_session(setup_database):
    async with test_db.session_factory() as session:
        yield session

@pytest.fixture
async def line(db_session):
    """
    The SM Epza <-> SM Dasmariñas line: both directions linked as
    opposites, 17 checkpoints each, name aliases and three drivers on
    the outbound route. No fare entries, so quotes fall back to the
    tiered formula until a test writes some.
    """
    outbound = Route(name="SM Epza - SM Dasmariñas", origin="SM Epza", destination="SM Dasmariñas")
    inbound = Route(name="SM Dasmariñas - SM Epza", origin="SM Dasmariñas", destination="SM Epza")
    db_session.add_all([outbound, inbound])
    await db_session.flush()
    outbound.opposite_route_id = inbound.id
    inbound.opposite_route_id = outbound.id

    out_checkpoints = build_checkpoints(outbound.id, LINE_CHECKPOINTS)
    in_checkpoints = build_checkpoints(inbound.id, list(reversed(LINE_CHECKPOINTS)))
    db_session.add_all(out_checkpoints + in_checkpoints)
    db_session.add_all([
        CheckpointAlias(prefix=normalize_name(prefix), canonical_name=canonical)
        for prefix, canonical in ALIASES
    ])
    drivers = [
        Driver(username=username, full_name=full_name, plate_number=plate, assigned_route_id=outbound.id)
        for username, full_name, plate in DRIVERS
    ]
    db_session.add_all(drivers)
    await db_session.commit()

    return SimpleNamespace(
        outbound=outbound,
        inbound=inbound,
        out={cp.name: cp for cp in out_checkpoints},
        inb={cp.name: cp for cp in in_checkpoints},
        drivers=drivers,
    )
