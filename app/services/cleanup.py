"""Cleanup service for the URL shortener application.

This module contains the CleanupService class which implements the expiration
sweep and the retention purge of retired records.
"""

import logging
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.db.session import db_transaction
from app.repositories.base import RepositoryError
from app.repositories.url_repository import URLRepository
from app.services.exceptions import ExpiredURLCleanupError

if TYPE_CHECKING:
    from app.core.cache import URLCache

logger = logging.getLogger(__name__)


class CleanupService:
    """
    Service for cleanup operations in the URL shortener.

    The sweep only deactivates records; rows are deleted solely by the
    retention purge, and only once they are inactive.
    """

    def __init__(self, url_repository: URLRepository, cache: "URLCache"):
        """
        Initialize the cleanup service.

        Args:
            url_repository: Repository for URL data access
            cache: Cache whose entries are evicted for retired codes
        """
        self.url_repository = url_repository
        self.cache = cache

    @db_transaction(db_param_name="db")
    async def _deactivate(self, db: AsyncSession, now: datetime) -> List[str]:
        return await self.url_repository.deactivate_expired(db, now)

    @db_transaction(db_param_name="db")
    async def _purge(self, db: AsyncSession, cutoff: datetime) -> List[str]:
        return await self.url_repository.purge_retired(db, cutoff)

    async def deactivate_expired(self, db: AsyncSession) -> Dict[str, Any]:
        """
        Deactivate every active URL whose expiry has passed and evict it from the cache.

        Safe to run repeatedly; a second run finds nothing to do.

        Args:
            db: Database session

        Returns:
            Dict with statistics about the sweep

        Raises:
            ExpiredURLCleanupError: If the store fails
        """
        start_time = datetime.utcnow()
        try:
            codes = await self._deactivate(db, start_time)
        except RepositoryError as e:
            logger.error(f"Error during expiration sweep: {e}", exc_info=True)
            raise ExpiredURLCleanupError(f"Failed to deactivate expired URLs: {str(e)}") from e

        evicted = await self.cache.try_delete(*codes)
        execution_time = (datetime.utcnow() - start_time).total_seconds()

        logger.info(
            f"Expiration sweep completed: {len(codes)} URLs deactivated, "
            f"{evicted} cache entries evicted in {execution_time:.2f}s"
        )
        return {
            "deactivated": len(codes),
            "evicted": evicted,
            "execution_time": execution_time,
            "timestamp": start_time.isoformat()
        }

    async def purge_retired(
        self,
        db: AsyncSession,
        retention_days: Optional[int] = None
    ) -> Dict[str, Any]:
        """
        Permanently delete inactive URLs that retired more than ``retention_days`` ago.

        Args:
            db: Database session
            retention_days: Days an inactive record is kept, defaults to RETENTION_DAYS

        Returns:
            Dict with statistics about the purge

        Raises:
            ExpiredURLCleanupError: If the store fails or retention_days is not positive
        """
        retention_days = settings.RETENTION_DAYS if retention_days is None else retention_days
        if retention_days <= 0:
            raise ExpiredURLCleanupError("Retention period must be a positive number of days")

        start_time = datetime.utcnow()
        cutoff = start_time - timedelta(days=retention_days)
        try:
            codes = await self._purge(db, cutoff)
        except RepositoryError as e:
            logger.error(f"Error during retention purge: {e}", exc_info=True)
            raise ExpiredURLCleanupError(f"Failed to purge retired URLs: {str(e)}") from e

        evicted = await self.cache.try_delete(*codes)
        execution_time = (datetime.utcnow() - start_time).total_seconds()

        logger.info(
            f"Retention purge completed: {len(codes)} URLs deleted "
            f"(cutoff {cutoff.isoformat()}) in {execution_time:.2f}s"
        )
        return {
            "purged": len(codes),
            "evicted": evicted,
            "cutoff": cutoff.isoformat(),
            "execution_time": execution_time,
            "timestamp": start_time.isoformat()
        }

    async def get_cleanup_stats(
        self,
        db: AsyncSession,
        retention_days: Optional[int] = None
    ) -> Dict[str, Any]:
        """
        Get statistics about data that needs cleanup.

        Args:
            db: Database session
            retention_days: Retention used to count purge candidates

        Returns:
            Dict with statistics about cleanup candidates

        Raises:
            ExpiredURLCleanupError: If retrieval fails
        """
        retention_days = settings.RETENTION_DAYS if retention_days is None else retention_days
        now = datetime.utcnow()
        try:
            expired_count = await self.url_repository.count_expired_active(db, now)
            purge_count = await self.url_repository.count_retired_before(
                db, now - timedelta(days=retention_days)
            )
        except RepositoryError as e:
            logger.error(f"Error getting cleanup stats: {e}")
            raise ExpiredURLCleanupError(f"Failed to get cleanup statistics: {str(e)}") from e

        return {
            "expired_active_urls": expired_count,
            "purge_candidates": purge_count,
            "retention_days": retention_days,
            "timestamp": now.isoformat()
        }
