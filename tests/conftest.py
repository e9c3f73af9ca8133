"""Test fixtures for the URL shortener application."""

import os

# Must be set before any app module reads settings
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("LOG_TO_FILE", "false")
os.environ.setdefault("CACHE_ENABLED", "false")
os.environ.setdefault("SCHEDULER_ENABLED", "false")

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from redis.exceptions import ConnectionError as RedisConnectionError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

from app.core.cache import URLCache
from app.db.session import get_db
# Import models to ensure they're registered with SQLModel metadata
from app.models.url import ShortURL  # noqa: F401
from app.repositories.url_repository import URLRepository
from app.services.exceptions import CacheUnavailableError
from app.services.shortener import ShortenedURLService, drain_pending_clicks


# Test database URL - using SQLite in-memory
TEST_SQLALCHEMY_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture
async def test_engine():
    """Create a fresh in-memory SQLite database for every test."""
    engine = create_async_engine(
        TEST_SQLALCHEMY_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False
    )

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def test_db(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Session on the test database; services commit through it."""
    async_session = async_sessionmaker(
        bind=test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False
    )

    async with async_session() as session:
        yield session
        await drain_pending_clicks()


class FakeRedis:
    """In-memory stand-in for the subset of redis.asyncio.Redis used by the cache."""

    def __init__(self):
        self.data = {}
        self.expiry = {}
        self.fail = False

    def _check(self):
        if self.fail:
            raise RedisConnectionError("Connection refused")

    async def get(self, key):
        self._check()
        return self.data.get(key)

    async def set(self, key, value, ex=None):
        self._check()
        self.data[key] = value
        if ex:
            self.expiry[key] = ex
        return True

    async def delete(self, *keys):
        self._check()
        removed = 0
        for key in keys:
            if key in self.data:
                del self.data[key]
                self.expiry.pop(key, None)
                removed += 1
        return removed

    async def ping(self):
        self._check()
        return True


class FakeRedisManager:
    """Availability-tracking manager wrapping a FakeRedis client."""

    def __init__(self, client: FakeRedis, available: bool = True):
        self.client = client
        self.available = available
        self.errors = []

    @property
    def is_available(self) -> bool:
        return self.available

    async def get_client(self):
        if not self.available:
            raise CacheUnavailableError("Redis is down")
        return self.client

    def mark_unavailable(self, error=None) -> None:
        self.available = False
        self.errors.append(error)


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def redis_manager_stub(fake_redis) -> FakeRedisManager:
    return FakeRedisManager(fake_redis)


@pytest.fixture
def url_cache(redis_manager_stub) -> URLCache:
    return URLCache(redis_manager_stub, default_ttl=3600)


@pytest.fixture
def url_repository() -> URLRepository:
    """Return URL repository instance."""
    return URLRepository()


@pytest.fixture
def session_factory(test_db):
    """Session factory handing detached work the test session."""
    @asynccontextmanager
    async def _factory():
        yield test_db

    return _factory


@pytest.fixture
def shortener_service(url_repository, url_cache, session_factory) -> ShortenedURLService:
    return ShortenedURLService(
        url_repository=url_repository,
        cache=url_cache,
        session_factory=session_factory
    )


@pytest_asyncio.fixture
async def client(test_db, shortener_service) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client bound to the app with the test session and service."""
    from app.api.dependencies import get_shortener_service
    from app.main import app

    async def _override_get_db():
        yield test_db

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_shortener_service] = lambda: shortener_service

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as test_client:
        yield test_client

    app.dependency_overrides.clear()
