"""In-memory TTL cache with tenant-namespaced keys.

Every operation takes the tenant id explicitly; keys of different
tenants never collide and a stored entry is only returned to the tenant
it was stored for. The cache is best-effort: internal failures degrade
to a miss and never reach the caller.
"""

from __future__ import annotations

import copy
import time
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from threading import Lock
from typing import Any, Protocol, TypeVar

import structlog

from outfitter_tenancy.auth.context import is_valid_outfitter_id
from outfitter_tenancy.cache.keys import (
    build_cache_key,
    pattern_prefix,
    tenant_prefix,
)
from outfitter_tenancy.errors import CacheInternalError
from outfitter_tenancy.security.audit import SecurityAuditor, SecurityEvent

logger = structlog.get_logger()

T = TypeVar("T")

DEFAULT_TTL_SECONDS = 300.0


@dataclass
class CacheEntry:
    data: Any
    expiry: float
    outfitter_id: int


@dataclass(frozen=True)
class CacheStats:
    total_entries: int
    tenant_entries: int | None = None


@dataclass(frozen=True)
class WarmItem:
    key: str
    data: Any
    params: Any = None
    ttl: float | None = None


class TenantCacheProtocol(Protocol):
    """Contract for tenant caches (in-memory now, shared store later)."""

    def get(self, base_key: str, outfitter_id: int, params: Any = None) -> Any: ...

    def set(
        self,
        base_key: str,
        value: Any,
        outfitter_id: int,
        params: Any = None,
        ttl: float | None = None,
    ) -> None: ...

    def invalidate(
        self, base_key: str, outfitter_id: int, params: Any = None
    ) -> None: ...

    def invalidate_pattern(self, base_key_prefix: str, outfitter_id: int) -> int: ...

    def invalidate_all(self, outfitter_id: int) -> int: ...


class TenantAwareCache:
    """Tenant-isolated key/value store with TTL expiry.

    Values are deep-copied on the way in and out so callers cannot
    mutate cached state through a returned reference.
    Single-process; not persisted across restarts.
    """

    def __init__(
        self,
        default_ttl: float = DEFAULT_TTL_SECONDS,
        auditor: SecurityAuditor | None = None,
    ) -> None:
        self._entries: dict[str, CacheEntry] = {}
        self._default_ttl = default_ttl
        self._auditor = auditor or SecurityAuditor()
        self._lock = Lock()

    @property
    def default_ttl(self) -> float:
        return self._default_ttl

    def get(self, base_key: str, outfitter_id: int, params: Any = None) -> Any:
        """Return the cached value or None on miss, expiry or any error."""
        if not is_valid_outfitter_id(outfitter_id):
            logger.warning("cache_rejected_missing_tenant", op="get", base_key=base_key)
            return None
        try:
            return self._get(base_key, outfitter_id, params)
        except Exception as exc:
            logger.debug("cache_internal_error", op="get", base_key=base_key, error=str(exc))
            return None

    def _get(self, base_key: str, outfitter_id: int, params: Any) -> Any:
        cache_key = build_cache_key(base_key, outfitter_id, params)
        with self._lock:
            entry = self._entries.get(cache_key)
            if entry is None:
                return None
            if time.monotonic() > entry.expiry:
                del self._entries[cache_key]
                return None
            if entry.outfitter_id != outfitter_id:
                found = entry.outfitter_id
                data = None
            else:
                found = None
                data = entry.data

        if found is not None:
            self._auditor.log_event(
                SecurityEvent.CACHE_ISOLATION_BREACH,
                outfitter_id=outfitter_id,
                found_outfitter_id=found,
                base_key=base_key,
            )
            return None

        logger.debug("cache_hit", outfitter_id=outfitter_id, base_key=base_key)
        return self._copy(data)

    def set(
        self,
        base_key: str,
        value: Any,
        outfitter_id: int,
        params: Any = None,
        ttl: float | None = None,
    ) -> None:
        """Store ``value`` for ``ttl`` seconds (default TTL when None)."""
        if not is_valid_outfitter_id(outfitter_id):
            logger.warning("cache_rejected_missing_tenant", op="set", base_key=base_key)
            return
        try:
            cache_key = build_cache_key(base_key, outfitter_id, params)
            entry = CacheEntry(
                data=self._copy(value),
                expiry=time.monotonic() + (ttl if ttl is not None else self._default_ttl),
                outfitter_id=outfitter_id,
            )
        except Exception as exc:
            logger.debug("cache_internal_error", op="set", base_key=base_key, error=str(exc))
            return
        with self._lock:
            self._entries[cache_key] = entry
        logger.debug("cache_set", outfitter_id=outfitter_id, base_key=base_key)

    def invalidate(self, base_key: str, outfitter_id: int, params: Any = None) -> None:
        """Remove exactly one entry."""
        if not is_valid_outfitter_id(outfitter_id):
            return
        cache_key = build_cache_key(base_key, outfitter_id, params)
        with self._lock:
            self._entries.pop(cache_key, None)
        logger.debug("cache_invalidate", outfitter_id=outfitter_id, base_key=base_key)

    def invalidate_pattern(self, base_key_prefix: str, outfitter_id: int) -> int:
        """Remove every entry of the tenant whose base key starts with the prefix."""
        if not is_valid_outfitter_id(outfitter_id):
            return 0
        removed = self._sweep(pattern_prefix(base_key_prefix, outfitter_id))
        logger.debug(
            "cache_invalidate_pattern",
            outfitter_id=outfitter_id,
            pattern=base_key_prefix,
            removed=removed,
        )
        return removed

    def invalidate_all(self, outfitter_id: int) -> int:
        """Remove every entry of one tenant."""
        if not is_valid_outfitter_id(outfitter_id):
            return 0
        removed = self._sweep(tenant_prefix(outfitter_id))
        logger.info("cache_invalidate_all", outfitter_id=outfitter_id, removed=removed)
        return removed

    def _sweep(self, prefix: str) -> int:
        with self._lock:
            doomed = [key for key in self._entries if key.startswith(prefix)]
            for key in doomed:
                del self._entries[key]
        return len(doomed)

    def warm_cache(self, outfitter_id: int, items: Iterable[WarmItem]) -> int:
        """Preload frequently read data for a tenant."""
        count = 0
        for item in items:
            self.set(item.key, item.data, outfitter_id, item.params, item.ttl)
            count += 1
        logger.info("cache_warmed", outfitter_id=outfitter_id, entries=count)
        return count

    def purge_expired(self) -> int:
        """Drop expired entries of all tenants. Call periodically."""
        now = time.monotonic()
        with self._lock:
            expired = [key for key, e in self._entries.items() if now > e.expiry]
            for key in expired:
                del self._entries[key]
        return len(expired)

    def get_stats(self, outfitter_id: int | None = None) -> CacheStats:
        """Entry counts for monitoring. Expired-but-unpurged entries count."""
        with self._lock:
            total = len(self._entries)
            if outfitter_id is None:
                return CacheStats(total_entries=total)
            prefix = tenant_prefix(outfitter_id)
            tenant = sum(1 for key in self._entries if key.startswith(prefix))
        return CacheStats(total_entries=total, tenant_entries=tenant)

    @staticmethod
    def _copy(value: Any) -> Any:
        try:
            return copy.deepcopy(value)
        except Exception as exc:
            raise CacheInternalError(f"Uncopyable cache value: {exc}") from exc

    def wrap(
        self,
        base_key: str,
        fetch: Callable[..., Awaitable[T]],
        ttl: float | None = None,
    ) -> Callable[..., Awaitable[T]]:
        """Caching version of ``fetch`` keyed by an explicit tenant id.

        The returned coroutine function takes ``outfitter_id`` as a
        keyword argument; the remaining arguments become the cache
        params and are passed through to ``fetch``::

            list_cached = cache.wrap(CacheKeys.EXPERIENCES, store.list_experiences)
            rows = await list_cached(outfitter_id=ctx.outfitter_id, location_id=3)
        """

        async def wrapper(*args: Any, outfitter_id: int, **kwargs: Any) -> T:
            params = {"args": list(args), "kwargs": kwargs} if args or kwargs else None
            return await cached_fetch(
                self,
                base_key,
                lambda: fetch(*args, outfitter_id=outfitter_id, **kwargs),
                outfitter_id,
                params=params,
                ttl=ttl,
            )

        return wrapper


async def cached_fetch(
    cache: TenantCacheProtocol,
    base_key: str,
    fetch: Callable[[], Awaitable[T]],
    outfitter_id: int,
    params: Any = None,
    ttl: float | None = None,
) -> T:
    """Return the cached value for the tenant, or fetch and cache it.

    ``None`` results are returned but not cached. An invalid tenant id
    bypasses the cache entirely; the fetch still runs and is expected
    to fail closed on its own.
    """
    cached = cache.get(base_key, outfitter_id, params)
    if cached is not None:
        return cached
    result = await fetch()
    if result is not None:
        cache.set(base_key, result, outfitter_id, params, ttl)
    return result
