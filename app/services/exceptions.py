"""Exceptions for the URL shortener service layer.

This module contains the exception hierarchy for the service layer,
providing domain-specific exceptions that abstract underlying implementation details.
"""


class ServiceError(Exception):
    """Base exception for all service-level errors."""
    pass


class URLError(ServiceError):
    """Base exception for URL-related errors."""
    pass


class URLValidationError(URLError):
    """Input failed validation checks."""
    pass


class InvalidURLError(URLValidationError):
    """The URL format is invalid."""
    pass


class InvalidExpirationError(URLValidationError):
    """The requested lifetime is not a positive number of seconds."""
    pass


class MaliciousURLError(URLValidationError):
    """The URL matched the safety denylist."""
    pass


class InvalidShortCodeError(URLValidationError):
    """The short code is malformed and cannot exist."""
    pass


class AliasError(URLValidationError):
    """Base exception for custom alias errors."""
    pass


class InvalidAliasError(AliasError):
    """The custom alias does not match the allowed format."""
    pass


class ReservedAliasError(AliasError):
    """The custom alias collides with a system route."""
    pass


class AliasTakenError(AliasError):
    """The custom alias is already used by another record."""
    pass


class URLCreationError(URLError):
    """Error occurred during URL creation."""
    pass


class CodeSpaceExhaustedError(URLCreationError):
    """No unused short code was found within the retry budget."""
    pass


class URLNotFoundError(URLError):
    """No active, unexpired URL exists for the short code."""
    pass


class StoreUnavailableError(ServiceError):
    """The durable store could not serve the request."""
    pass


class CacheUnavailableError(ServiceError):
    """The cache cannot be reached. Never propagated past the cache wrapper."""
    pass


class CleanupError(ServiceError):
    """Base exception for cleanup-related errors."""
    pass


class ExpiredURLCleanupError(CleanupError):
    """Error occurred while sweeping or purging expired URLs."""
    pass
