"""URL shortener data models.

This module defines the ShortURL model for storing shortened URLs in the database.
"""
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import DateTime, Index
from sqlmodel import Field, SQLModel


class ShortURLBase(SQLModel):
    """Base model for short URL data."""

    long_url: str = Field(
        description="The normalized long URL to redirect to"
    )
    short_code: str = Field(
        max_length=30,
        unique=True,
        description="Unique code for the shortened URL"
    )
    expires_at: Optional[datetime] = Field(
        default=None,
        sa_type=DateTime(),
        description="When this short URL expires (null means no expiration)"
    )
    creator_ip: Optional[str] = Field(
        default=None,
        max_length=45,
        description="Address of the client that created the record"
    )
    is_custom_alias: bool = Field(
        default=False,
        description="Whether the short code was chosen by the user"
    )


class ShortURL(ShortURLBase, table=True):
    """
    Short URL model for storing shortened URLs in the database.

    Rows are never deleted by normal operation: expiry flips ``is_active``
    and only the retention purge removes rows that are already inactive.
    Timestamps are stored as naive UTC.
    """

    __tablename__ = "urls"

    id: Optional[int] = Field(default=None, primary_key=True)
    clicks: int = Field(default=0, description="Number of resolutions")
    created_at: datetime = Field(
        default_factory=datetime.utcnow,
        sa_type=DateTime(),
        description="Timestamp when this short URL was created"
    )
    is_active: bool = Field(default=True)
    last_accessed: Optional[datetime] = Field(default=None, sa_type=DateTime())

    __table_args__ = (
        Index("ix_urls_long_url", "long_url"),
        Index("ix_urls_creator_ip", "creator_ip"),
        Index("ix_urls_is_active", "is_active"),
        Index("ix_urls_expires_at", "expires_at"),
    )

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """Check if the short URL has expired.

        Args:
            now: Reference time, defaults to the current UTC time

        Returns:
            bool: True if the URL has expired, False otherwise
        """
        if self.expires_at is None:
            return False
        return self.expires_at <= (now or datetime.utcnow())

    def is_resolvable(self, now: Optional[datetime] = None) -> bool:
        """Active and not past its expiry, regardless of sweep progress."""
        return self.is_active and not self.is_expired(now)

    def seconds_until_expiry(self, now: Optional[datetime] = None) -> Optional[int]:
        """Whole seconds left before expiry, or None for records that never expire."""
        if self.expires_at is None:
            return None
        return int((self.expires_at - (now or datetime.utcnow())).total_seconds())

    @classmethod
    def generate_expiration(
        cls, seconds: Optional[int] = None, now: Optional[datetime] = None
    ) -> Optional[datetime]:
        """Generate an expiration timestamp ``seconds`` from now.

        Args:
            seconds: Lifetime in seconds, or None for no expiration
            now: Reference time, defaults to the current UTC time

        Returns:
            Optional[datetime]: Expiration timestamp or None
        """
        if seconds is None:
            return None
        return (now or datetime.utcnow()) + timedelta(seconds=seconds)


class ShortURLCreate(ShortURLBase):
    """Schema for creating a new short URL."""
    pass


class ShortURLStats(SQLModel):
    """Snapshot of a record's durable usage statistics."""
    short_code: str
    long_url: str
    clicks: int
    created_at: datetime
    expires_at: Optional[datetime] = None
    last_accessed: Optional[datetime] = None
    is_custom_alias: bool = False


class ShortenResult(SQLModel):
    """Outcome of a shorten request."""
    short_code: str
    long_url: str
    is_custom_alias: bool
    expires_at: Optional[datetime] = None
    created: bool = True
