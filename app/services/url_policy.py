"""Long URL normalization and safety checks."""

import re
from abc import ABC, abstractmethod
from typing import Iterable, List, Optional

from pydantic import HttpUrl, TypeAdapter, ValidationError

from app.core.config import settings
from app.services.exceptions import InvalidURLError, MaliciousURLError

_http_url = TypeAdapter(HttpUrl)
_SCHEME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9+.-]*://")
ALLOWED_SCHEMES = ("http", "https")


def normalize_url(raw) -> str:
    """
    Trim a user supplied URL and default it to https.

    The returned string is the trimmed input (plus scheme), not pydantic's
    re-serialized form, so equal inputs deduplicate to equal rows.

    Raises:
        InvalidURLError: For empty input, non-http(s) schemes or malformed URLs
    """
    if not isinstance(raw, str):
        raise InvalidURLError("URL must be a string")

    url = raw.strip()
    if not url:
        raise InvalidURLError("URL must not be empty")

    if not _SCHEME_RE.match(url):
        if ":" in url.split("/", 1)[0] and not re.match(r"^[^:]+:\d+", url):
            # mailto:, javascript: and friends
            raise InvalidURLError(f"Unsupported URL scheme: {url}")
        url = f"https://{url}"

    scheme = url.split("://", 1)[0].lower()
    if scheme not in ALLOWED_SCHEMES:
        raise InvalidURLError(f"Unsupported URL scheme: {scheme}")

    try:
        _http_url.validate_python(url)
    except ValidationError as e:
        raise InvalidURLError(f"Invalid URL format: {url}") from e
    return url


class URLSafetyPolicy(ABC):
    """Decides whether a normalized URL may be shortened."""

    @abstractmethod
    def check(self, url: str) -> None:
        """Raise MaliciousURLError when the URL is refused."""


class PatternDenylistPolicy(URLSafetyPolicy):
    """Refuses URLs containing any of a list of case-insensitive patterns."""

    def __init__(self, patterns: Optional[Iterable[str]] = None):
        self.patterns: List[str] = list(
            settings.MALICIOUS_URL_PATTERNS if patterns is None else patterns
        )
        self._compiled = [re.compile(p, re.IGNORECASE) for p in self.patterns]

    def check(self, url: str) -> None:
        for pattern in self._compiled:
            if pattern.search(url):
                raise MaliciousURLError("URL was flagged as potentially malicious")
