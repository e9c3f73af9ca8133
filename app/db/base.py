"""Async engine and session factory for the URL store."""

from typing import Any, AsyncGenerator, Dict
import logging
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from app.core.config import EnvironmentType, settings

logger = logging.getLogger(__name__)


def engine_options() -> Dict[str, Any]:
    """Pool options for the configured environment.

    Tests run without a pool; every other environment shares the Postgres
    pool settings and only development may echo SQL.
    """
    if settings.ENVIRONMENT == EnvironmentType.TESTING:
        return {"poolclass": NullPool}

    return {
        "echo": settings.DB_ECHO and settings.ENVIRONMENT == EnvironmentType.DEVELOPMENT,
        "pool_size": settings.POSTGRES_POOL_SIZE,
        "max_overflow": settings.POSTGRES_POOL_MAX_OVERFLOW,
        "pool_timeout": settings.POSTGRES_POOL_TIMEOUT,
        "pool_recycle": settings.POSTGRES_POOL_RECYCLE,
        "pool_pre_ping": True,
    }


logger.info(f"Creating database engine for {settings.POSTGRES_SERVER}:{settings.POSTGRES_PORT}")
engine = create_async_engine(str(settings.SQLALCHEMY_DATABASE_URI), **engine_options())

async_session_factory = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


@asynccontextmanager
async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Session on the shared engine, closed on exit."""
    async with async_session_factory() as session:
        yield session
