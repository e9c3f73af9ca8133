"""Tests for repository error handling."""

from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from app.models.url import ShortURLCreate
from app.repositories.url_repository import RepositoryError
from tests.utils import random_url


@pytest.mark.repository
class TestRepositoryErrorHandling:
    """Tests for error handling in repositories."""

    @pytest.mark.asyncio
    async def test_database_error_handling(self, test_db, url_repository):
        """Test handling of database errors."""
        with patch.object(test_db, "execute", side_effect=SQLAlchemyError("Test database error")):
            with pytest.raises(RepositoryError) as excinfo:
                await url_repository.get_by_short_code(test_db, "errortest")

            assert "Test database error" in str(excinfo.value)

    @pytest.mark.asyncio
    async def test_connection_error_on_write(self, test_db, url_repository):
        """Lost connections surface as RepositoryError on every write path."""
        error = OperationalError("UPDATE", {}, Exception("server closed the connection"))

        with patch.object(test_db, "execute", side_effect=error):
            with pytest.raises(RepositoryError):
                await url_repository.increment_clicks(test_db, "abcdefg")
            with pytest.raises(RepositoryError):
                await url_repository.deactivate_expired(test_db)
            with pytest.raises(RepositoryError):
                await url_repository.find_active_by_long_url(test_db, random_url())

    @pytest.mark.asyncio
    async def test_create_error_rolls_back(self, test_db, url_repository):
        """Errors during flush are wrapped and the session is rolled back."""
        data = ShortURLCreate(long_url=random_url(), short_code="flushfail")

        with patch.object(test_db, "flush", side_effect=SQLAlchemyError("flush failed")):
            with pytest.raises(RepositoryError) as excinfo:
                await url_repository.create(test_db, data)

        assert "flush failed" in str(excinfo.value)
        assert await url_repository.count(test_db) == 0

    @pytest.mark.asyncio
    async def test_exists_requires_conditions(self, test_db, url_repository):
        with pytest.raises(ValueError):
            await url_repository.exists(test_db)
