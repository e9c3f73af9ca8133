"""Test utilities for URL shortener tests."""

import random
import string
from datetime import datetime
from typing import Any, Dict, Optional

from app.models.url import ShortURL


def random_string(length: int = 10) -> str:
    """Generate a random alphanumeric string."""
    return ''.join(random.choice(string.ascii_letters + string.digits) for _ in range(length))


def random_url() -> str:
    """Generate a random URL for testing."""
    domain = f"{random_string(8).lower()}.com"
    path = random_string(12)
    return f"https://{domain}/{path}"


def create_test_url_data(
    long_url: Optional[str] = None,
    short_code: Optional[str] = None,
    is_custom_alias: bool = False,
    expires_at: Optional[datetime] = None,
    clicks: int = 0,
    is_active: bool = True,
    created_at: Optional[datetime] = None
) -> Dict[str, Any]:
    """Create test data dict for a ShortURL."""
    data = {
        "long_url": long_url or random_url(),
        "short_code": short_code or random_string(7),
        "is_custom_alias": is_custom_alias,
        "expires_at": expires_at,
        "clicks": clicks,
        "is_active": is_active
    }
    if created_at is not None:
        data["created_at"] = created_at
    return data


async def create_test_url(db, **kwargs) -> ShortURL:
    """Create and commit a test ShortURL in the database."""
    url = ShortURL(**create_test_url_data(**kwargs))
    db.add(url)
    await db.commit()
    await db.refresh(url)
    return url
