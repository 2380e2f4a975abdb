"""
Shared test fixtures.

Sets test environment variables so ``ServiceSettings`` loads without real
services, provides the in-memory telemetry fake, an aiosqlite-backed session
for repository and service tests, and a FastAPI TestClient whose database
and telemetry dependencies are replaced.

CHANGELOG:
- 2026-03-09: Add API client with dependency overrides (STORY-015)
- 2026-03-03: Initial creation (STORY-003)
"""

from collections.abc import AsyncGenerator, Generator
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from fakes import FakeTelemetry
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine

from pvbilling.config import get_settings
from pvbilling.db.models import Base
from pvbilling.db.session import create_session_factory

ADMIN_HEADER = {"Authorization": "Bearer admin-token"}
USER_HEADER = {"Authorization": "Bearer user-token"}


@pytest.fixture(autouse=True)
def _set_test_env(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """Set required environment variables and reset the settings cache."""
    monkeypatch.setenv("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
    monkeypatch.setenv("REDIS_URL", "redis://localhost:6379/0")
    monkeypatch.setenv("INFLUXDB_URL", "http://influx.test:8086")
    monkeypatch.setenv("API_TOKENS", "admin-token:admin-1:ADMIN,user-token:user-1")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture()
def fake_telemetry() -> FakeTelemetry:
    return FakeTelemetry()


@pytest_asyncio.fixture()
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield a session bound to a fresh in-memory SQLite database."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    factory = create_session_factory(engine)
    async with factory() as session:
        yield session
    await engine.dispose()


@pytest.fixture()
def mock_db_session() -> AsyncMock:
    """Create a mock async database session."""
    session = AsyncMock()
    session.execute = AsyncMock(return_value=MagicMock())
    session.commit = AsyncMock()
    return session


@pytest.fixture()
def mock_redis() -> AsyncMock:
    """Create a mock async Redis client."""
    client = AsyncMock()
    client.get = AsyncMock(return_value=None)
    client.set = AsyncMock()
    client.delete = AsyncMock()
    client.aclose = AsyncMock()
    return client


@pytest.fixture()
def client(
    mock_db_session: AsyncMock,
    fake_telemetry: FakeTelemetry,
) -> Generator[TestClient, None, None]:
    """TestClient running the app lifespan with DB and telemetry overridden."""
    from pvbilling.api.deps import get_db, get_telemetry
    from pvbilling.api.main import app

    async def _db() -> AsyncGenerator[AsyncMock, None]:
        yield mock_db_session

    app.dependency_overrides[get_db] = _db
    app.dependency_overrides[get_telemetry] = lambda: fake_telemetry
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
