"""Pytest configuration and shared fixtures."""

import os
from unittest.mock import AsyncMock, MagicMock

import pytest

# Set required environment variables for testing BEFORE importing app
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("JWT_SECRET", "test-jwt-secret-with-enough-length-for-hs256")
os.environ.setdefault("XAI_API_KEY", "test-xai-key")

from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from lifegraph.core.database import Base
from lifegraph.core.rate_limiter import RateLimiter
from lifegraph.database import models  # noqa: F401
from lifegraph.main import app


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def test_client() -> TestClient:
    """Create FastAPI test client.

    Returns:
        TestClient: FastAPI test client instance
    """
    return TestClient(app)


@pytest.fixture(autouse=True)
def clear_dependency_overrides():
    """Ensure FastAPI dependency overrides are reset between tests."""
    app.dependency_overrides = {}
    yield
    app.dependency_overrides = {}


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def rate_limiter() -> RateLimiter:
    """Generous limiter so graph tests never hit the budget."""
    return RateLimiter(max_calls=1000, window_seconds=60, gc_probability=0.0)


@pytest.fixture
async def db_engine():
    """In-memory SQLite engine with the graph schema created."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> async_sessionmaker:
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def mock_llm_client() -> AsyncMock:
    """LLM client whose generate_content returns an empty JSON object by default."""
    client = AsyncMock()
    client.generate_content = AsyncMock(return_value="{}")
    return client


@pytest.fixture
def mock_httpx_client() -> MagicMock:
    """Create mock httpx client.

    Returns:
        MagicMock: Mocked httpx client usable as an async context manager
    """
    client = MagicMock()
    client.__aenter__ = AsyncMock(return_value=client)
    client.__aexit__ = AsyncMock(return_value=None)
    return client
