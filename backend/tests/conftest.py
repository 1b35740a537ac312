"""
Test Configuration — Fixtures for async DB, test client, and a fake detector.

Each test gets its own in-memory SQLite database with foreign keys enforced,
so ON DELETE CASCADE behaves as it does on PostgreSQL.
"""

import uuid

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from api.deps import get_current_user, get_db, get_detection_client, get_tenant_db
from api.main import app
from db.session import Base
from integrations.detection import DetectionError, DetectionResult, Prediction

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

CUSTOMER_ID = "00000000-0000-0000-0000-000000000001"


@pytest.fixture
async def test_engine():
    """Create a fresh database engine and build all tables."""
    engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=StaticPool)

    @event.listens_for(engine.sync_engine, "connect")
    def enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def test_db(test_engine):
    session_factory = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session


@pytest.fixture
def customer_id():
    return uuid.UUID(CUSTOMER_ID)


@pytest.fixture
def mock_user():
    """Mock authenticated user."""
    return {
        "sub": "auth0|test-user-id",
        "email": "test@shelflens.com",
        "customer_id": CUSTOMER_ID,
    }


class FakeDetector:
    """Stands in for DetectionClient; returns canned labels or fails."""

    def __init__(self, labels=None, fail=False):
        self.labels = list(labels or [])
        self.fail = fail
        self.calls: list[str] = []

    async def detect(self, image_url: str) -> DetectionResult:
        self.calls.append(image_url)
        if self.fail:
            raise DetectionError("Detection API error: 500")
        return DetectionResult(predictions=tuple(Prediction(label, 0.97) for label in self.labels))


@pytest.fixture
def fake_detector():
    return FakeDetector()


@pytest.fixture
async def client(test_db, mock_user, fake_detector):
    """Create an async test client with dependency overrides."""

    async def override_get_db():
        yield test_db

    def override_get_current_user():
        return mock_user

    async def override_get_tenant_db():
        return test_db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = override_get_current_user
    app.dependency_overrides[get_tenant_db] = override_get_tenant_db
    app.dependency_overrides[get_detection_client] = lambda: fake_detector

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()
