"""Domain-specific exceptions for outfitter-tenancy."""

from __future__ import annotations


class MissingTenantContextError(Exception):
    """Raised when a request has no resolvable outfitter.

    Surfaced as HTTP 401. There is no fallback tenant.
    """

    def __init__(self, reason: str = "Missing tenant context") -> None:
        self.reason = reason
        super().__init__(reason)


class InsufficientRoleError(Exception):
    """Raised when the acting principal lacks a required role (HTTP 403)."""

    def __init__(self, required: tuple[str, ...], actual: str) -> None:
        self.required = required
        self.actual = actual
        super().__init__(f"Requires role: {' or '.join(required)} (has {actual})")


class RateLimitExceededError(Exception):
    """A tenant exceeded its window or daily quota (HTTP 429).

    Carries the advisory headers so the handler can attach them
    to the rejection response as well.
    """

    def __init__(
        self,
        message: str,
        retry_after: int,
        headers: dict[str, str],
        daily_remaining: int | None = None,
    ) -> None:
        self.message = message
        self.retry_after = retry_after
        self.headers = headers
        self.daily_remaining = daily_remaining
        super().__init__(message)


class CacheInternalError(Exception):
    """Failure inside the tenant cache. Never leaves the cache module."""
