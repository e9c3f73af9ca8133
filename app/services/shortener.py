"""URL shortening service for the URL shortener application.

This module contains the ShortenedURLService class which implements business logic
for URL shortening, resolution and statistics lookup.
"""

import asyncio
import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, Optional, Set

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.db.session import SessionFactory, SessionManager, db_transaction
from app.models.url import ShortURL, ShortURLStats, ShortenResult
from app.repositories.base import DuplicateEntityError, RepositoryError
from app.repositories.url_repository import URLRepository
from app.services.aliases import AliasPolicy
from app.services.codes import CodeGenerator
from app.services.exceptions import (
    AliasTakenError,
    CodeSpaceExhaustedError,
    InvalidExpirationError,
    InvalidShortCodeError,
    StoreUnavailableError,
    URLNotFoundError,
)
from app.services.url_policy import PatternDenylistPolicy, URLSafetyPolicy, normalize_url

if TYPE_CHECKING:
    from app.core.cache import URLCache

logger = logging.getLogger(__name__)

# Click increments scheduled from cache hits, kept referenced until done
_pending_click_tasks: Set[asyncio.Task] = set()


async def drain_pending_clicks(timeout: Optional[float] = 5.0) -> int:
    """
    Wait for scheduled click increments, cancelling any still running after ``timeout``.

    Returns:
        int: Number of tasks that completed
    """
    tasks = list(_pending_click_tasks)
    if not tasks:
        return 0

    done, pending = await asyncio.wait(tasks, timeout=timeout)
    for task in pending:
        task.cancel()
    if pending:
        logger.warning(f"Cancelled {len(pending)} click increments still pending at shutdown")
    return len(done)


class ShortenedURLService:
    """
    Service for URL shortening business logic.

    Holds no per-request state: the repository, cache, code generator and
    policies are injected, and every operation receives its own session.
    """

    def __init__(
        self,
        url_repository: URLRepository,
        cache: "URLCache",
        code_generator: Optional[CodeGenerator] = None,
        alias_policy: Optional[AliasPolicy] = None,
        safety_policy: Optional[URLSafetyPolicy] = None,
        session_factory: Optional[SessionFactory] = None,
        code_length: Optional[int] = None,
        max_attempts: Optional[int] = None,
    ):
        """
        Initialize the URL shortening service.

        Args:
            url_repository: Repository for URL data access
            cache: Best-effort cache of short code to long URL
            code_generator: Source of random short codes
            alias_policy: Format and reserved-name checks for custom aliases
            safety_policy: Policy refusing malicious URLs
            session_factory: Opens sessions for click increments detached from a request
            code_length: Length of generated codes
            max_attempts: Generated candidates tried before giving up
        """
        self.url_repository = url_repository
        self.cache = cache
        self.code_generator = code_generator or CodeGenerator()
        self.alias_policy = alias_policy or AliasPolicy()
        self.safety_policy = safety_policy or PatternDenylistPolicy()
        self.session_factory = session_factory or SessionManager.transaction_context
        self.code_length = code_length or settings.SHORT_CODE_LENGTH
        self.max_attempts = max_attempts or settings.SHORT_CODE_MAX_ATTEMPTS

    async def shorten(
        self,
        db: AsyncSession,
        long_url: str,
        expires_in: Optional[int] = None,
        creator_ip: Optional[str] = None,
        custom_alias: Optional[str] = None,
    ) -> ShortenResult:
        """
        Create a short code for a long URL, or return the existing one.

        Args:
            db: Database session
            long_url: URL to shorten; ``https://`` is assumed when no scheme is given
            expires_in: Lifetime in seconds, None for no expiration
            creator_ip: Address of the requesting client
            custom_alias: User-chosen short code

        Returns:
            ShortenResult: ``created`` is False when an existing record was reused

        Raises:
            InvalidURLError: If the URL is malformed or not http(s)
            MaliciousURLError: If the safety policy refuses the URL
            InvalidExpirationError: If expires_in is not a positive integer
            InvalidAliasError: If the alias format is invalid
            ReservedAliasError: If the alias names a system route
            AliasTakenError: If the alias is used by any record
            CodeSpaceExhaustedError: If no free code was found
            StoreUnavailableError: If the database failed
        """
        long_url = normalize_url(long_url)
        self.safety_policy.check(long_url)

        if expires_in is not None and (
            isinstance(expires_in, bool) or not isinstance(expires_in, int) or expires_in <= 0
        ):
            raise InvalidExpirationError("expiresIn must be a positive number of seconds")

        expires_at = ShortURL.generate_expiration(expires_in)
        data: Dict[str, Any] = {
            "long_url": long_url,
            "expires_at": expires_at,
            "creator_ip": creator_ip,
        }

        try:
            if custom_alias is not None:
                record = await self._create_with_alias(db, custom_alias, data)
            else:
                existing = await self.url_repository.find_active_by_long_url(db, long_url)
                if existing is not None:
                    logger.debug(f"Reusing code '{existing.short_code}' for {long_url}")
                    return self._result(existing, created=False)
                record = await self._create_with_generated_code(db, data)
        except RepositoryError as e:
            logger.error(f"Store error while shortening {long_url}: {e}")
            raise StoreUnavailableError("URL store is unavailable") from e

        await self.cache.try_set(record.short_code, record.long_url, expires_in)
        logger.info(f"Created short code '{record.short_code}' (custom={record.is_custom_alias})")
        return self._result(record, created=True)

    async def _create_with_alias(
        self, db: AsyncSession, alias: str, data: Dict[str, Any]
    ) -> ShortURL:
        self.alias_policy.validate(alias)
        try:
            return await self._insert_record(
                db, {**data, "short_code": alias, "is_custom_alias": True}
            )
        except DuplicateEntityError as e:
            raise AliasTakenError(f"Alias '{alias}' is already taken") from e

    async def _create_with_generated_code(self, db: AsyncSession, data: Dict[str, Any]) -> ShortURL:
        for attempt in range(1, self.max_attempts + 1):
            candidate = self.code_generator.generate(self.code_length)
            try:
                return await self._insert_record(
                    db, {**data, "short_code": candidate, "is_custom_alias": False}
                )
            except DuplicateEntityError:
                logger.debug(f"Short code collision on attempt {attempt}: '{candidate}'")

        logger.error(f"No free short code after {self.max_attempts} attempts")
        raise CodeSpaceExhaustedError(
            f"Failed to generate a unique short code after {self.max_attempts} attempts"
        )

    @db_transaction(db_param_name="db")
    async def _insert_record(self, db: AsyncSession, data: Dict[str, Any]) -> ShortURL:
        return await self.url_repository.create_short_url(db, data)

    @db_transaction(db_param_name="db")
    async def _record_click(self, db: AsyncSession, short_code: str) -> bool:
        return await self.url_repository.increment_clicks(db, short_code)

    async def resolve(self, db: AsyncSession, short_code: str) -> str:
        """
        Return the long URL for a short code and count the click.

        On a cache hit the increment runs in a detached task; on a miss it
        runs before returning.

        Raises:
            InvalidShortCodeError: If the code is too short to exist
            URLNotFoundError: If no active, unexpired record exists
            StoreUnavailableError: If the database failed
        """
        self._check_code_shape(short_code)

        cached = await self.cache.try_get(short_code)
        if cached is not None:
            self._schedule_click(short_code)
            return cached

        try:
            record = await self.url_repository.get_by_short_code(db, short_code)
            now = datetime.utcnow()
            if record is None or not record.is_resolvable(now):
                raise URLNotFoundError(f"URL with code '{short_code}' not found")

            long_url = record.long_url
            await self.cache.try_set(short_code, long_url, record.seconds_until_expiry(now))
            await self._record_click(db, short_code)
        except RepositoryError as e:
            logger.error(f"Store error while resolving '{short_code}': {e}")
            raise StoreUnavailableError("URL store is unavailable") from e

        return long_url

    async def get_stats(self, db: AsyncSession, short_code: str) -> ShortURLStats:
        """
        Read usage statistics straight from the store.

        Inactive and expired records still report.

        Raises:
            InvalidShortCodeError: If the code is too short to exist
            URLNotFoundError: If no record uses the code
            StoreUnavailableError: If the database failed
        """
        self._check_code_shape(short_code)

        try:
            record = await self.url_repository.get_by_short_code(db, short_code)
        except RepositoryError as e:
            logger.error(f"Store error while reading stats for '{short_code}': {e}")
            raise StoreUnavailableError("URL store is unavailable") from e

        if record is None:
            raise URLNotFoundError(f"URL with code '{short_code}' not found")

        return ShortURLStats(
            short_code=record.short_code,
            long_url=record.long_url,
            clicks=record.clicks,
            created_at=record.created_at,
            expires_at=record.expires_at,
            last_accessed=record.last_accessed,
            is_custom_alias=record.is_custom_alias,
        )

    def _schedule_click(self, short_code: str) -> None:
        task = asyncio.create_task(self._detached_click(short_code))
        _pending_click_tasks.add(task)
        task.add_done_callback(_pending_click_tasks.discard)

    async def _detached_click(self, short_code: str) -> None:
        # Runs after the response; concurrent increments are not ordered
        try:
            async with self.session_factory() as session:
                await self._record_click(session, short_code)
        except Exception as e:
            logger.error(f"Detached click increment failed for '{short_code}': {e}")

    @staticmethod
    def _check_code_shape(short_code) -> None:
        if not isinstance(short_code, str) or len(short_code) < settings.SHORT_CODE_MIN_LENGTH:
            raise InvalidShortCodeError("Short code is malformed")

    @staticmethod
    def _result(record: ShortURL, created: bool) -> ShortenResult:
        return ShortenResult(
            short_code=record.short_code,
            long_url=record.long_url,
            is_custom_alias=record.is_custom_alias,
            expires_at=record.expires_at,
            created=created,
        )
