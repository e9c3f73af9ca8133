"""API dependencies for FastAPI.

This module provides dependency injection functions for FastAPI endpoints
to access the cache and service instances.
"""

from fastapi import Depends

from app.core.cache import URLCache
from app.core.config import settings
from app.core.redis import redis_manager
from app.repositories.url_repository import URLRepository
from app.services.cleanup import CleanupService
from app.services.shortener import ShortenedURLService


async def get_url_repository() -> URLRepository:
    """Get an instance of the URL repository."""
    return URLRepository()


async def get_url_cache() -> URLCache:
    """Get the cache wrapper over the shared Redis manager."""
    return URLCache(redis_manager)


async def get_shortener_service(
    url_repo: URLRepository = Depends(get_url_repository),
    cache: URLCache = Depends(get_url_cache),
) -> ShortenedURLService:
    """Get an instance of the URL shortening service."""
    return ShortenedURLService(url_repository=url_repo, cache=cache)


def get_base_url() -> str:
    """Get the base URL for shortened links."""
    return settings.BASE_URL.rstrip("/")


async def get_cleanup_service(
    url_repo: URLRepository = Depends(get_url_repository),
    cache: URLCache = Depends(get_url_cache),
) -> CleanupService:
    """Get an instance of the cleanup service."""
    return CleanupService(url_repository=url_repo, cache=cache)
