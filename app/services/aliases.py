"""Custom alias rules.

Both checks are pure and run before the store is touched.
"""

import re
from typing import FrozenSet, Iterable, Optional

from app.services.exceptions import InvalidAliasError, ReservedAliasError

ALIAS_PATTERN = re.compile(r"^[A-Za-z0-9_-]{3,30}$")

# Paths served by the application itself
RESERVED_ALIASES: FrozenSet[str] = frozenset({
    "api",
    "admin",
    "shorten",
    "stats",
    "health",
    "login",
    "register",
    "dashboard",
    "settings",
    "help",
    "about",
    "docs",
    "redoc",
    "openapi.json",
})


class AliasPolicy:
    """Format and reserved-name checks for user-chosen short codes."""

    def __init__(self, reserved: Optional[Iterable[str]] = None):
        names = RESERVED_ALIASES if reserved is None else reserved
        self.reserved = frozenset(name.lower() for name in names)

    def is_reserved(self, alias: str) -> bool:
        """Case-insensitive membership in the reserved set."""
        return alias.lower() in self.reserved

    def validate(self, alias) -> str:
        """
        Check an alias and return it unchanged.

        Raises:
            InvalidAliasError: If the alias is not 3-30 of ``[A-Za-z0-9_-]``
            ReservedAliasError: If the alias names a system route
        """
        if not isinstance(alias, str) or not ALIAS_PATTERN.match(alias):
            raise InvalidAliasError(
                "Alias must be 3-30 characters of letters, digits, '_' or '-'"
            )
        if self.is_reserved(alias):
            raise ReservedAliasError(f"Alias '{alias}' is reserved")
        return alias
