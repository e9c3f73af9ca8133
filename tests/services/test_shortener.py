"""Tests for the URL shortening service."""

from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from unittest.mock import AsyncMock

import pytest
from freezegun import freeze_time
from sqlalchemy.exc import OperationalError

from app.repositories.base import RepositoryError
from app.services.codes import CodeGenerator
from app.services.exceptions import (
    AliasTakenError,
    CodeSpaceExhaustedError,
    InvalidAliasError,
    InvalidExpirationError,
    InvalidShortCodeError,
    InvalidURLError,
    MaliciousURLError,
    ReservedAliasError,
    StoreUnavailableError,
    URLNotFoundError,
)
from app.services.shortener import ShortenedURLService, drain_pending_clicks
from tests.utils import create_test_url, random_url

LOST_CONNECTION = OperationalError("COMMIT", {}, Exception("server closed the connection"))


class ScriptedCodes(CodeGenerator):
    """Generator returning a fixed sequence of candidates."""

    def __init__(self, codes):
        super().__init__()
        self.codes = iter(codes)
        self.calls = 0

    def generate(self, length):
        self.calls += 1
        return next(self.codes)


@pytest.mark.service
class TestShorten:

    @pytest.mark.asyncio
    async def test_shorten_adds_scheme_and_caches(self, test_db, shortener_service, fake_redis):
        result = await shortener_service.shorten(test_db, "example.com/a")

        assert result.long_url == "https://example.com/a"
        assert result.created is True
        assert result.is_custom_alias is False
        assert len(result.short_code) == 7
        assert fake_redis.data[result.short_code] == "https://example.com/a"
        assert fake_redis.expiry[result.short_code] == 3600

    @pytest.mark.asyncio
    async def test_shorten_records_creator_ip(self, test_db, shortener_service, url_repository):
        result = await shortener_service.shorten(test_db, random_url(), creator_ip="203.0.113.9")

        record = await url_repository.get_by_short_code(test_db, result.short_code)
        assert record.creator_ip == "203.0.113.9"

    @pytest.mark.asyncio
    async def test_shorten_with_expiration(self, test_db, shortener_service, url_repository, fake_redis):
        result = await shortener_service.shorten(test_db, "https://example.com/e", expires_in=86400)

        record = await url_repository.get_by_short_code(test_db, result.short_code)
        lifetime = (record.expires_at - record.created_at).total_seconds()
        assert abs(lifetime - 86400) < 5
        assert fake_redis.expiry[result.short_code] == 86400

    @pytest.mark.asyncio
    @pytest.mark.parametrize("expires_in", [0, -10, True, 1.5, "60"])
    async def test_shorten_rejects_bad_expiration(self, test_db, shortener_service, url_repository, expires_in):
        with pytest.raises(InvalidExpirationError):
            await shortener_service.shorten(test_db, random_url(), expires_in=expires_in)
        assert await url_repository.count(test_db) == 0

    @pytest.mark.asyncio
    async def test_shorten_is_idempotent(self, test_db, shortener_service, url_repository):
        first = await shortener_service.shorten(test_db, "https://example.com/same")
        second = await shortener_service.shorten(test_db, "https://example.com/same")

        assert second.short_code == first.short_code
        assert second.created is False
        assert await url_repository.count(test_db) == 1

    @pytest.mark.asyncio
    async def test_expired_record_is_not_reused(self, test_db, shortener_service):
        old = await create_test_url(
            test_db,
            long_url="https://example.com/old",
            expires_at=datetime.utcnow() - timedelta(minutes=5)
        )

        result = await shortener_service.shorten(test_db, "https://example.com/old")

        assert result.created is True
        assert result.short_code != old.short_code

    @pytest.mark.asyncio
    async def test_invalid_url(self, test_db, shortener_service):
        with pytest.raises(InvalidURLError):
            await shortener_service.shorten(test_db, "ftp://example.com")
        with pytest.raises(InvalidURLError):
            await shortener_service.shorten(test_db, "")

    @pytest.mark.asyncio
    async def test_malicious_url(self, test_db, shortener_service, url_repository):
        with pytest.raises(MaliciousURLError):
            await shortener_service.shorten(test_db, "https://login-phish.example.com")
        assert await url_repository.count(test_db) == 0

    @pytest.mark.asyncio
    async def test_collision_retries_with_new_candidate(self, test_db, url_repository, url_cache, session_factory):
        await create_test_url(test_db, short_code="Taken77")
        generator = ScriptedCodes(["Taken77", "Fresh88"])
        service = ShortenedURLService(
            url_repository, url_cache, code_generator=generator, session_factory=session_factory
        )

        result = await service.shorten(test_db, random_url())

        assert result.short_code == "Fresh88"
        assert generator.calls == 2

    @pytest.mark.asyncio
    async def test_code_space_exhausted(self, test_db, url_repository, url_cache, session_factory):
        await create_test_url(test_db, short_code="Taken77")
        generator = ScriptedCodes(["Taken77"] * 3)
        service = ShortenedURLService(
            url_repository, url_cache, code_generator=generator,
            session_factory=session_factory, max_attempts=3
        )

        with pytest.raises(CodeSpaceExhaustedError):
            await service.shorten(test_db, random_url())
        assert generator.calls == 3
        assert await url_repository.count(test_db) == 1

    @pytest.mark.asyncio
    async def test_store_failure(self, test_db, shortener_service, url_repository, monkeypatch):
        monkeypatch.setattr(
            url_repository, "find_active_by_long_url",
            AsyncMock(side_effect=RepositoryError("connection refused"))
        )

        with pytest.raises(StoreUnavailableError):
            await shortener_service.shorten(test_db, random_url())

    @pytest.mark.asyncio
    async def test_commit_failure_reports_store_unavailable(self, test_db, shortener_service, monkeypatch):
        monkeypatch.setattr(test_db, "commit", AsyncMock(side_effect=LOST_CONNECTION))

        with pytest.raises(StoreUnavailableError):
            await shortener_service.shorten(test_db, random_url())


@pytest.mark.service
class TestCustomAlias:

    @pytest.mark.asyncio
    async def test_alias_created(self, test_db, shortener_service, fake_redis):
        result = await shortener_service.shorten(test_db, "https://x.com", custom_alias="mylink")

        assert result.short_code == "mylink"
        assert result.is_custom_alias is True
        assert fake_redis.data["mylink"] == "https://x.com"

    @pytest.mark.asyncio
    async def test_alias_taken(self, test_db, shortener_service):
        await shortener_service.shorten(test_db, "https://x.com", custom_alias="mylink")

        with pytest.raises(AliasTakenError):
            await shortener_service.shorten(test_db, "https://y.com", custom_alias="mylink")

    @pytest.mark.asyncio
    async def test_alias_not_recycled_after_expiry(self, test_db, shortener_service):
        await create_test_url(
            test_db,
            short_code="oldlink",
            is_custom_alias=True,
            is_active=False,
            expires_at=datetime.utcnow() - timedelta(days=3)
        )

        with pytest.raises(AliasTakenError):
            await shortener_service.shorten(test_db, random_url(), custom_alias="oldlink")

    @pytest.mark.asyncio
    async def test_alias_bypasses_dedup(self, test_db, shortener_service, url_repository):
        generated = await shortener_service.shorten(test_db, "https://example.com/dup")
        aliased = await shortener_service.shorten(
            test_db, "https://example.com/dup", custom_alias="dup-alias"
        )

        assert aliased.short_code == "dup-alias"
        assert aliased.short_code != generated.short_code
        assert await url_repository.count(test_db) == 2

    @pytest.mark.asyncio
    async def test_alias_checked_before_store(self, test_db, shortener_service, url_repository):
        with pytest.raises(ReservedAliasError):
            await shortener_service.shorten(test_db, random_url(), custom_alias="Stats")
        with pytest.raises(InvalidAliasError):
            await shortener_service.shorten(test_db, random_url(), custom_alias="a b")
        assert await url_repository.count(test_db) == 0


@pytest.mark.service
class TestResolve:

    @pytest.mark.asyncio
    async def test_resolve_miss_reads_store_and_counts(self, test_db, shortener_service, url_repository, fake_redis):
        await create_test_url(test_db, short_code="abcdefg", long_url="https://example.com/r")

        long_url = await shortener_service.resolve(test_db, "abcdefg")

        assert long_url == "https://example.com/r"
        assert fake_redis.data["abcdefg"] == "https://example.com/r"
        assert fake_redis.expiry["abcdefg"] == 3600

        stats = await shortener_service.get_stats(test_db, "abcdefg")
        assert stats.clicks == 1
        assert stats.last_accessed is not None

    @pytest.mark.asyncio
    async def test_resolve_hit_counts_in_background(self, test_db, shortener_service, fake_redis):
        result = await shortener_service.shorten(test_db, "https://example.com/hit")
        assert result.short_code in fake_redis.data

        # Increments share the test session, so let each finish before the next
        for _ in range(2):
            assert await shortener_service.resolve(test_db, result.short_code) == "https://example.com/hit"
            assert await drain_pending_clicks() == 1

        stats = await shortener_service.get_stats(test_db, result.short_code)
        assert stats.clicks == 2

    @pytest.mark.asyncio
    async def test_cache_ttl_tracks_expiry(self, test_db, shortener_service, fake_redis):
        await create_test_url(
            test_db, short_code="soonexp", expires_at=datetime.utcnow() + timedelta(seconds=600)
        )

        await shortener_service.resolve(test_db, "soonexp")

        assert 590 <= fake_redis.expiry["soonexp"] <= 600

    @pytest.mark.asyncio
    async def test_resolve_after_expiry(self, test_db, shortener_service, fake_redis):
        result = await shortener_service.shorten(test_db, "https://example.com/exp", expires_in=86400)
        assert await shortener_service.resolve(test_db, result.short_code) == "https://example.com/exp"
        await drain_pending_clicks()

        # The cache entry lapses with its TTL
        fake_redis.data.clear()

        with freeze_time(datetime.utcnow() + timedelta(seconds=86401), real_asyncio=True):
            with pytest.raises(URLNotFoundError):
                await shortener_service.resolve(test_db, result.short_code)

    @pytest.mark.asyncio
    async def test_resolve_unknown_inactive_and_unswept(self, test_db, shortener_service):
        await create_test_url(test_db, short_code="inactive", is_active=False)
        await create_test_url(
            test_db, short_code="unswept", expires_at=datetime.utcnow() - timedelta(seconds=1)
        )

        for code in ("missing", "inactive", "unswept"):
            with pytest.raises(URLNotFoundError):
                await shortener_service.resolve(test_db, code)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("code", [None, "", "ab", 12345])
    async def test_resolve_rejects_malformed_code(self, shortener_service, code):
        # No session needed: the shape check runs before any I/O
        with pytest.raises(InvalidShortCodeError):
            await shortener_service.resolve(None, code)

    @pytest.mark.asyncio
    async def test_resolve_with_cache_down(self, test_db, shortener_service, fake_redis, redis_manager_stub):
        result = await shortener_service.shorten(test_db, "https://example.com/down")
        fake_redis.fail = True

        assert await shortener_service.resolve(test_db, result.short_code) == "https://example.com/down"
        assert redis_manager_stub.is_available is False

        # Further requests skip the cache entirely
        assert await shortener_service.resolve(test_db, result.short_code) == "https://example.com/down"
        stats = await shortener_service.get_stats(test_db, result.short_code)
        assert stats.clicks == 2

    @pytest.mark.asyncio
    async def test_shorten_with_cache_down(self, test_db, shortener_service, fake_redis):
        fake_redis.fail = True

        result = await shortener_service.shorten(test_db, "https://example.com/nocache")

        assert result.created is True
        assert fake_redis.data == {}

    @pytest.mark.asyncio
    async def test_resolve_store_failure(self, test_db, shortener_service, url_repository, monkeypatch):
        monkeypatch.setattr(
            url_repository, "get_by_short_code",
            AsyncMock(side_effect=RepositoryError("connection refused"))
        )

        with pytest.raises(StoreUnavailableError):
            await shortener_service.resolve(test_db, "abcdefg")

    @pytest.mark.asyncio
    async def test_click_commit_failure_reports_store_unavailable(self, test_db, shortener_service, monkeypatch):
        await create_test_url(test_db, short_code="commit1")
        monkeypatch.setattr(test_db, "commit", AsyncMock(side_effect=LOST_CONNECTION))

        with pytest.raises(StoreUnavailableError):
            await shortener_service.resolve(test_db, "commit1")

    @pytest.mark.asyncio
    async def test_detached_click_failure_is_logged(self, test_db, url_repository, url_cache, fake_redis):
        @asynccontextmanager
        async def broken_factory():
            raise RuntimeError("pool exhausted")
            yield  # pragma: no cover

        service = ShortenedURLService(url_repository, url_cache, session_factory=broken_factory)
        fake_redis.data["cachedcode"] = "https://example.com/c"

        assert await service.resolve(test_db, "cachedcode") == "https://example.com/c"
        assert await drain_pending_clicks() == 1


@pytest.mark.service
class TestStats:

    @pytest.mark.asyncio
    async def test_stats_of_inactive_record(self, test_db, shortener_service):
        await create_test_url(
            test_db, short_code="retired", clicks=9, is_active=False, is_custom_alias=True
        )

        stats = await shortener_service.get_stats(test_db, "retired")

        assert stats.short_code == "retired"
        assert stats.clicks == 9
        assert stats.is_custom_alias is True

    @pytest.mark.asyncio
    async def test_stats_not_found(self, test_db, shortener_service):
        with pytest.raises(URLNotFoundError):
            await shortener_service.get_stats(test_db, "nothere")

    @pytest.mark.asyncio
    async def test_stats_bypass_cache(self, test_db, shortener_service, fake_redis):
        fake_redis.data["ghostcode"] = "https://example.com/ghost"

        with pytest.raises(URLNotFoundError):
            await shortener_service.get_stats(test_db, "ghostcode")
