"""URL Repository for the URL shortener application.

This module provides the URLRepository class for database operations related to ShortURL models.
Following the Repository pattern, it abstracts database interactions for URL shortening operations.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.expression import and_, or_

from app.models.url import ShortURL, ShortURLCreate
from app.repositories.base import (
    STORE_ERRORS,
    BaseRepository,
    DuplicateEntityError,
    RepositoryError,
)


class URLRepository(BaseRepository[ShortURL, ShortURLCreate]):
    """
    Repository for ShortURL model database operations.

    Uniqueness of ``short_code`` is enforced by the table constraint; this
    repository translates violations into DuplicateEntityError.
    """

    def __init__(self, batch_size: int = 1000):
        """Initialize the repository with the ShortURL model type."""
        super().__init__(ShortURL)
        self.batch_size = batch_size

    def _not_expired(self, now: datetime):
        return or_(
            self.model_type.expires_at.is_(None),
            self.model_type.expires_at > now
        )

    def _expired_active(self, now: datetime):
        return and_(
            self.model_type.is_active.is_(True),
            self.model_type.expires_at.isnot(None),
            self.model_type.expires_at <= now
        )

    def _retired_before(self, cutoff: datetime):
        # Only rows the sweep has already deactivated are eligible
        return and_(
            self.model_type.is_active.is_(False),
            or_(
                and_(
                    self.model_type.expires_at.isnot(None),
                    self.model_type.expires_at < cutoff
                ),
                and_(
                    self.model_type.expires_at.is_(None),
                    self.model_type.created_at < cutoff
                )
            )
        )

    async def create_short_url(
        self,
        db: AsyncSession,
        data: Union[ShortURLCreate, Dict[str, Any]]
    ) -> ShortURL:
        """
        Create a new shortened URL entry.

        Args:
            db: Database session
            data: Short URL data (either as a ShortURLCreate model or dictionary)

        Returns:
            The created ShortURL entity

        Raises:
            DuplicateEntityError: If the short code already exists
            RepositoryError: On other database errors
        """
        if isinstance(data, ShortURLCreate):
            short_code = data.short_code
        else:
            short_code = data.get("short_code")

        if short_code and await self.short_code_exists(db, short_code):
            raise DuplicateEntityError(self.model_type, "short_code", short_code)

        try:
            return await self.create(db, data)
        except IntegrityError as e:
            # Lost a race against a concurrent insert of the same code
            raise DuplicateEntityError(self.model_type, "short_code", short_code) from e

    async def get_by_short_code(self, db: AsyncSession, short_code: str) -> Optional[ShortURL]:
        """
        Find a URL by its short code, whatever its state.

        Raises:
            RepositoryError: On database errors
        """
        try:
            query = select(self.model_type).where(self.model_type.short_code == short_code)
            result = await db.execute(query)
            return result.scalar_one_or_none()
        except STORE_ERRORS as e:
            raise RepositoryError(f"Error retrieving URL by short code: {e}") from e

    async def short_code_exists(self, db: AsyncSession, short_code: str) -> bool:
        """
        Check whether any record, active or not, uses the short code.

        Raises:
            RepositoryError: On database errors
        """
        return await self.exists(db, short_code=short_code)

    async def find_active_by_long_url(
        self,
        db: AsyncSession,
        long_url: str,
        now: Optional[datetime] = None
    ) -> Optional[ShortURL]:
        """
        Find the oldest active, unexpired record for an exact long URL.

        Raises:
            RepositoryError: On database errors
        """
        try:
            now = now or datetime.utcnow()
            query = (
                select(self.model_type)
                .where(
                    self.model_type.long_url == long_url,
                    self.model_type.is_active.is_(True),
                    self._not_expired(now)
                )
                .order_by(self.model_type.id)
                .limit(1)
            )
            result = await db.execute(query)
            return result.scalars().first()
        except STORE_ERRORS as e:
            raise RepositoryError(f"Error retrieving URL by long URL: {e}") from e

    async def increment_clicks(
        self,
        db: AsyncSession,
        short_code: str,
        now: Optional[datetime] = None
    ) -> bool:
        """
        Count one resolution and stamp ``last_accessed`` in a single UPDATE.

        The counter is incremented in SQL, so concurrent resolutions never
        overwrite each other; only their relative order is unspecified.

        Returns:
            True if an active, unexpired record was updated

        Raises:
            RepositoryError: On database errors
        """
        try:
            now = now or datetime.utcnow()
            stmt = (
                update(self.model_type)
                .where(
                    self.model_type.short_code == short_code,
                    self.model_type.is_active.is_(True),
                    self._not_expired(now)
                )
                .values(
                    clicks=self.model_type.clicks + 1,
                    last_accessed=now
                )
                .execution_options(synchronize_session=False)
            )
            result = await db.execute(stmt)
            return result.rowcount > 0
        except STORE_ERRORS as e:
            raise RepositoryError(f"Error incrementing click count: {e}") from e

    async def deactivate_expired(
        self,
        db: AsyncSession,
        now: Optional[datetime] = None
    ) -> List[str]:
        """
        Set ``is_active = False`` on every active record past its expiry.

        Works in batches of ``batch_size``. Running it twice is harmless.

        Returns:
            Short codes that were deactivated by this call

        Raises:
            RepositoryError: On database errors
        """
        now = now or datetime.utcnow()
        deactivated: List[str] = []
        try:
            while True:
                result = await db.execute(
                    select(self.model_type.short_code)
                    .where(self._expired_active(now))
                    .limit(self.batch_size)
                )
                codes = list(result.scalars().all())
                if not codes:
                    break

                await db.execute(
                    update(self.model_type)
                    .where(
                        self.model_type.short_code.in_(codes),
                        self.model_type.is_active.is_(True)
                    )
                    .values(is_active=False)
                    .execution_options(synchronize_session=False)
                )
                deactivated.extend(codes)
                if len(codes) < self.batch_size:
                    break
            return deactivated
        except STORE_ERRORS as e:
            raise RepositoryError(f"Error deactivating expired URLs: {e}") from e

    async def purge_retired(self, db: AsyncSession, cutoff: datetime) -> List[str]:
        """
        Permanently delete inactive records that retired before ``cutoff``.

        Active records are never matched.

        Returns:
            Short codes of the deleted records

        Raises:
            RepositoryError: On database errors
        """
        purged: List[str] = []
        try:
            while True:
                result = await db.execute(
                    select(self.model_type.short_code)
                    .where(self._retired_before(cutoff))
                    .limit(self.batch_size)
                )
                codes = list(result.scalars().all())
                if not codes:
                    break

                await db.execute(
                    delete(self.model_type)
                    .where(
                        self.model_type.short_code.in_(codes),
                        self.model_type.is_active.is_(False)
                    )
                    .execution_options(synchronize_session=False)
                )
                purged.extend(codes)
                if len(codes) < self.batch_size:
                    break
            return purged
        except STORE_ERRORS as e:
            raise RepositoryError(f"Error purging retired URLs: {e}") from e

    async def count_expired_active(self, db: AsyncSession, now: Optional[datetime] = None) -> int:
        """Records past expiry that the sweep has not deactivated yet."""
        return await self.count(db, self._expired_active(now or datetime.utcnow()))

    async def count_retired_before(self, db: AsyncSession, cutoff: datetime) -> int:
        """Records the retention purge would delete for ``cutoff``."""
        return await self.count(db, self._retired_before(cutoff))
