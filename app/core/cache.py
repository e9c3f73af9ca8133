"""
Best-effort URL cache.

Keys are short codes and values are long URLs, stored with a TTL in seconds.
Every operation degrades to a miss or a no-op when Redis is down, so callers
never branch on cache availability themselves.
"""

from typing import Optional

from loguru import logger
from redis.exceptions import RedisError

from app.core.config import settings
from app.services.exceptions import CacheUnavailableError

CACHE_ERRORS = (RedisError, CacheUnavailableError, OSError)


class URLCache:
    """Capability-checked wrapper around the Redis client manager."""

    def __init__(self, manager, default_ttl: Optional[int] = None):
        """
        Args:
            manager: Object exposing ``is_available``, ``get_client()`` and
                ``mark_unavailable()``, normally ``RedisClientManager``
            default_ttl: TTL for entries of records that never expire
        """
        self.manager = manager
        self.default_ttl = default_ttl or settings.CACHE_DEFAULT_TTL

    async def _client(self):
        if not self.manager.is_available:
            return None
        try:
            return await self.manager.get_client()
        except CacheUnavailableError:
            return None

    def _degrade(self, operation: str, short_code: str, error: BaseException) -> None:
        logger.warning(f"Cache {operation} failed for '{short_code}': {error}")
        self.manager.mark_unavailable(error)

    async def try_get(self, short_code: str) -> Optional[str]:
        """Return the cached long URL, or None on a miss or an unavailable cache."""
        client = await self._client()
        if client is None:
            return None
        try:
            return await client.get(short_code)
        except CACHE_ERRORS as e:
            self._degrade("get", short_code, e)
            return None

    async def try_set(self, short_code: str, long_url: str, ttl: Optional[int] = None) -> bool:
        """Store a mapping; entries with a non-positive TTL are not written."""
        ttl = self.default_ttl if ttl is None else int(ttl)
        if ttl <= 0:
            return False

        client = await self._client()
        if client is None:
            return False
        try:
            await client.set(short_code, long_url, ex=ttl)
            return True
        except CACHE_ERRORS as e:
            self._degrade("set", short_code, e)
            return False

    async def try_delete(self, *short_codes: str) -> int:
        """Evict keys; returns how many were removed (0 when the cache is down)."""
        if not short_codes:
            return 0

        client = await self._client()
        if client is None:
            return 0
        try:
            return int(await client.delete(*short_codes) or 0)
        except CACHE_ERRORS as e:
            self._degrade("delete", ",".join(short_codes), e)
            return 0
