"""
Redis client management module.

This module provides a Redis client manager with connection pooling,
availability tracking and background reconnection for the async cache.
"""

import asyncio
import random
from typing import Optional

import redis.asyncio as redis
from loguru import logger
from redis.asyncio.connection import ConnectionPool
from redis.exceptions import RedisError

from app.core.config import settings
from app.services.exceptions import CacheUnavailableError


class RedisClientManager:
    """
    Async Redis client manager with connection pooling.

    Features:
    - Automatic connection pooling
    - Availability flag consulted by the cache wrapper
    - Background reconnection with capped exponential backoff
    """

    def __init__(
        self,
        url: Optional[str] = None,
        enabled: Optional[bool] = None,
        initial_delay: Optional[float] = None,
        max_delay: Optional[float] = None,
    ):
        self._url = url or settings.REDIS_URI
        self._enabled = settings.CACHE_ENABLED if enabled is None else enabled
        self._initial_delay = (
            settings.REDIS_RECONNECT_INITIAL_DELAY if initial_delay is None else initial_delay
        )
        self._max_delay = settings.REDIS_RECONNECT_MAX_DELAY if max_delay is None else max_delay
        self._connection_pool: Optional[ConnectionPool] = None
        self._client: Optional[redis.Redis] = None
        self._is_connected = False
        self._reconnect_task: Optional[asyncio.Task] = None

    def _initialize(self) -> None:
        """Initialize the Redis connection pool."""
        try:
            self._connection_pool = redis.ConnectionPool.from_url(
                self._url,
                max_connections=settings.REDIS_MAX_CONNECTIONS,
                socket_timeout=settings.REDIS_SOCKET_TIMEOUT,
                socket_connect_timeout=settings.REDIS_SOCKET_TIMEOUT,
                decode_responses=True
            )
            logger.debug(f"Redis connection pool created for {self._url}")
        except (RedisError, ValueError) as e:
            logger.error(f"Failed to create Redis connection pool: {str(e)}")
            self._connection_pool = None

    @property
    def is_enabled(self) -> bool:
        return self._enabled

    @property
    def is_available(self) -> bool:
        """True when caching is enabled and the last round trip succeeded."""
        return self._enabled and self._is_connected

    async def get_client(self) -> redis.Redis:
        """
        Get a Redis client instance from the connection pool.

        Raises:
            CacheUnavailableError: If caching is disabled or no pool could be built
        """
        if not self._enabled:
            raise CacheUnavailableError("Redis cache is disabled")

        if self._client is None:
            if self._connection_pool is None:
                self._initialize()

            if self._connection_pool is None:
                raise CacheUnavailableError("Redis connection pool is not available")
            self._client = redis.Redis(connection_pool=self._connection_pool)

        return self._client

    async def ping(self) -> bool:
        """
        Test the Redis connection with a ping command.

        Returns:
            bool: True if successful, False otherwise
        """
        try:
            client = await self.get_client()
            self._is_connected = bool(await client.ping())
        except (RedisError, CacheUnavailableError, OSError) as e:
            logger.warning(f"Redis ping failed: {str(e)}")
            self._is_connected = False
        return self._is_connected

    async def connect(self) -> bool:
        """
        Probe Redis at startup.

        An unreachable cache is not fatal: a warning is logged and
        reconnection continues in the background.
        """
        if not self._enabled:
            logger.info("Redis cache is disabled by configuration")
            return False

        if await self.ping():
            logger.info("Redis cache connected")
            return True

        logger.warning("Redis unreachable at startup, continuing without cache")
        self.schedule_reconnect()
        return False

    def mark_unavailable(self, error: Optional[BaseException] = None) -> None:
        """Flag the cache as down after a failed command and start reconnecting."""
        if self._is_connected:
            logger.warning(f"Redis marked unavailable: {error}")
        self._is_connected = False
        self.schedule_reconnect()

    def schedule_reconnect(self) -> None:
        """Start the background reconnection loop unless one is already running."""
        if not self._enabled:
            return
        if self._reconnect_task is not None and not self._reconnect_task.done():
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._reconnect_task = loop.create_task(self.reconnect())

    def backoff_delay(self, attempt: int) -> float:
        """Exponential backoff with jitter, capped at the configured maximum."""
        # exponent bounded; 2 ** attempt overflows float after ~1000 attempts
        delay = self._initial_delay * (2 ** min(attempt, 32))
        jitter = 0.9 + 0.2 * random.random()
        return min(delay * jitter, self._max_delay)

    async def reconnect(self, max_retries: Optional[int] = None) -> bool:
        """
        Attempt to reconnect to Redis with capped exponential backoff.

        Args:
            max_retries: Maximum number of attempts, None retries until success

        Returns:
            bool: True if reconnection was successful
        """
        attempt = 0
        while max_retries is None or attempt < max_retries:
            logger.debug(f"Redis reconnection attempt {attempt + 1}")
            if await self.ping():
                logger.info("Redis reconnection successful")
                return True

            await asyncio.sleep(self.backoff_delay(attempt))
            attempt += 1

        logger.error(f"Redis reconnection failed after {max_retries} attempts")
        return False

    async def close(self) -> None:
        """Close the Redis client and connection pool."""
        if self._reconnect_task is not None and not self._reconnect_task.done():
            self._reconnect_task.cancel()
            try:
                await self._reconnect_task
            except asyncio.CancelledError:
                pass
        self._reconnect_task = None

        if self._client is not None:
            await self._client.aclose()
            self._client = None

        if self._connection_pool is not None:
            await self._connection_pool.disconnect()
            self._connection_pool = None

        self._is_connected = False
        logger.debug("Redis connections closed")


redis_manager = RedisClientManager()
