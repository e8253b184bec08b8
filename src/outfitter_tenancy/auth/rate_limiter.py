"""In-memory per-tenant sliding window rate limiter with daily quotas."""

from __future__ import annotations

import math
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from threading import Lock
from typing import Protocol

import structlog
from pydantic import BaseModel, ConfigDict, Field

from outfitter_tenancy.auth.context import require_outfitter_id

logger = structlog.get_logger()

DEFAULT_PROFILE = "default"
WINDOW_EXCEEDED = "Too many requests"
QUOTA_EXCEEDED = "Daily quota exceeded"


class RateLimitProfile(BaseModel):
    """Named limit configuration (``default``, ``auth``, ``api``, ``public``)."""

    model_config = ConfigDict(frozen=True)

    window_ms: int = Field(gt=0)
    max_requests: int = Field(gt=0)
    daily_quota: int | None = Field(default=None, gt=0)
    message: str | None = None

    @property
    def window_seconds(self) -> float:
        return self.window_ms / 1000


def default_profiles() -> dict[str, RateLimitProfile]:
    """Built-in profiles; every limiter starts with these."""
    return {
        "default": RateLimitProfile(
            window_ms=60_000, max_requests=1000, daily_quota=50_000
        ),
        "auth": RateLimitProfile(
            window_ms=15 * 60_000,
            max_requests=5,
            message="Too many authentication attempts",
        ),
        "api": RateLimitProfile(
            window_ms=60_000, max_requests=100, daily_quota=10_000
        ),
        "public": RateLimitProfile(
            window_ms=60_000, max_requests=50, daily_quota=5_000
        ),
    }


@dataclass(frozen=True)
class RateLimitResult:
    """Outcome of one ``check_limit`` call.

    ``reset_time`` is a UNIX timestamp (seconds) at which the oldest
    request in the window stops counting. ``retry_after`` is 0 when
    allowed.
    """

    allowed: bool
    limit: int
    remaining: int
    reset_time: float
    retry_after: int = 0
    daily_remaining: int | None = None
    message: str | None = None


@dataclass(frozen=True)
class UsageStats:
    current_window: int
    daily_usage: int
    daily_quota: int
    window_reset_time: float
    daily_reset_time: float


@dataclass
class _RateLimitEntry:
    daily_reset_at: float
    requests: list[float] = field(default_factory=list)
    daily_count: int = 0


class RateLimiterBackend(Protocol):
    """Contract a shared-store limiter (e.g. Redis) has to satisfy."""

    def check_limit(
        self, outfitter_id: int, profile_name: str = DEFAULT_PROFILE
    ) -> RateLimitResult: ...

    def get_usage_stats(
        self, outfitter_id: int, profile_name: str = DEFAULT_PROFILE
    ) -> UsageStats: ...

    def reset_tenant_limits(self, outfitter_id: int) -> None: ...


def next_utc_midnight(now: float) -> float:
    """Timestamp of the first UTC midnight strictly after ``now``."""
    day = datetime.fromtimestamp(now, tz=UTC).replace(
        hour=0, minute=0, second=0, microsecond=0
    )
    return (day + timedelta(days=1)).timestamp()


class TenantRateLimiter:
    """Sliding window + daily quota limiter, one entry per (tenant, profile).

    Check and record happen under one lock with no suspension point in
    between. Single-instance only: limits are per process. For
    multi-instance deployments implement RateLimiterBackend on a shared
    store.
    """

    def __init__(self, profiles: dict[str, RateLimitProfile] | None = None) -> None:
        self._profiles: dict[str, RateLimitProfile] = default_profiles()
        if profiles:
            self._profiles.update(profiles)
        self._entries: dict[tuple[int, str], _RateLimitEntry] = {}
        self._lock = Lock()

    @property
    def profiles(self) -> dict[str, RateLimitProfile]:
        return dict(self._profiles)

    def set_profile(self, name: str, profile: RateLimitProfile) -> None:
        self._profiles[name] = profile

    def get_profile(self, name: str) -> RateLimitProfile:
        """Profile by name; unknown names fall back to ``default``."""
        profile = self._profiles.get(name)
        if profile is None:
            logger.warning("rate_limit_profile_unknown", profile=name)
            return self._profiles[DEFAULT_PROFILE]
        return profile

    def _entry(self, outfitter_id: int, profile_name: str, now: float) -> _RateLimitEntry:
        key = (outfitter_id, profile_name)
        entry = self._entries.get(key)
        if entry is None:
            entry = _RateLimitEntry(daily_reset_at=next_utc_midnight(now))
            self._entries[key] = entry
        return entry

    @staticmethod
    def _refresh(entry: _RateLimitEntry, profile: RateLimitProfile, now: float) -> None:
        cutoff = now - profile.window_seconds
        entry.requests = [t for t in entry.requests if t > cutoff]
        if now >= entry.daily_reset_at:
            entry.daily_count = 0
            entry.daily_reset_at = next_utc_midnight(now)

    def check_limit(
        self, outfitter_id: int, profile_name: str = DEFAULT_PROFILE
    ) -> RateLimitResult:
        """Check and, if allowed, record one request for the tenant.

        Args:
            outfitter_id: Resolved tenant id. Invalid ids are rejected.
            profile_name: Profile to apply.

        Returns:
            RateLimitResult with the advisory counters filled in
            whether or not the request was allowed.

        Raises:
            MissingTenantContextError: ``outfitter_id`` is not a positive int.
        """
        outfitter_id = require_outfitter_id(outfitter_id)
        profile = self.get_profile(profile_name)
        now = time.time()

        with self._lock:
            entry = self._entry(outfitter_id, profile_name, now)
            self._refresh(entry, profile, now)

            window_ok = len(entry.requests) < profile.max_requests
            quota_ok = (
                profile.daily_quota is None
                or entry.daily_count < profile.daily_quota
            )
            allowed = window_ok and quota_ok

            if allowed:
                entry.requests.append(now)
                entry.daily_count += 1

            oldest = entry.requests[0] if entry.requests else now
            reset_time = oldest + profile.window_seconds
            remaining = max(0, profile.max_requests - len(entry.requests))
            daily_remaining = (
                max(0, profile.daily_quota - entry.daily_count)
                if profile.daily_quota is not None
                else None
            )
            daily_reset_at = entry.daily_reset_at

        if allowed:
            return RateLimitResult(
                allowed=True,
                limit=profile.max_requests,
                remaining=remaining,
                reset_time=reset_time,
                daily_remaining=daily_remaining,
            )

        retry_after = 0
        if not window_ok:
            retry_after = max(retry_after, math.ceil(reset_time - now))
        if not quota_ok:
            retry_after = max(retry_after, math.ceil(daily_reset_at - now))

        return RateLimitResult(
            allowed=False,
            limit=profile.max_requests,
            remaining=remaining,
            reset_time=reset_time,
            retry_after=max(retry_after, 1),
            daily_remaining=daily_remaining,
            message=QUOTA_EXCEEDED if not quota_ok else (profile.message or WINDOW_EXCEEDED),
        )

    def get_usage_stats(
        self, outfitter_id: int, profile_name: str = DEFAULT_PROFILE
    ) -> UsageStats:
        """Current counters for a tenant without recording a request."""
        outfitter_id = require_outfitter_id(outfitter_id)
        profile = self.get_profile(profile_name)
        now = time.time()
        with self._lock:
            entry = self._entry(outfitter_id, profile_name, now)
            self._refresh(entry, profile, now)
            oldest = entry.requests[0] if entry.requests else now
            return UsageStats(
                current_window=len(entry.requests),
                daily_usage=entry.daily_count,
                daily_quota=profile.daily_quota or 0,
                window_reset_time=oldest + profile.window_seconds,
                daily_reset_time=entry.daily_reset_at,
            )

    def get_all_usage(self) -> dict[int, dict[str, UsageStats]]:
        """Usage of every tracked tenant, grouped by profile."""
        with self._lock:
            keys = list(self._entries)
        usage: dict[int, dict[str, UsageStats]] = {}
        for outfitter_id, profile_name in keys:
            usage.setdefault(outfitter_id, {})[profile_name] = self.get_usage_stats(
                outfitter_id, profile_name
            )
        return usage

    def reset_tenant_limits(self, outfitter_id: int) -> None:
        """Forget all counters of one tenant (admin operation)."""
        with self._lock:
            for key in [k for k in self._entries if k[0] == outfitter_id]:
                del self._entries[key]
        logger.info("rate_limit_reset", outfitter_id=outfitter_id)

    def cleanup(self) -> int:
        """Drop idle entries. Call periodically.

        An entry is idle when its window is empty and its daily counter
        is zero or not enforced, so dropping it loses nothing.

        Returns:
            Number of entries removed.
        """
        now = time.time()
        cleaned = 0
        with self._lock:
            for key, entry in list(self._entries.items()):
                profile = self.get_profile(key[1])
                self._refresh(entry, profile, now)
                quota_idle = profile.daily_quota is None or entry.daily_count == 0
                if not entry.requests and quota_idle:
                    del self._entries[key]
                    cleaned += 1
        return cleaned


def rate_limit_headers(
    result: RateLimitResult, outfitter_id: int
) -> dict[str, str]:
    """Advisory headers sent on allowed and rejected responses alike."""
    headers = {
        "X-RateLimit-Limit": str(result.limit),
        "X-RateLimit-Remaining": str(result.remaining),
        "X-RateLimit-Reset": str(math.ceil(result.reset_time)),
        "X-Tenant-ID": str(outfitter_id),
    }
    if result.daily_remaining is not None:
        headers["X-RateLimit-Daily-Remaining"] = str(result.daily_remaining)
    return headers
