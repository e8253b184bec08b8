"""Tenant-aware cache, key builders and the invalidation router."""

from outfitter_tenancy.cache.invalidation import (
    DEFAULT_INVALIDATION_TABLE,
    InvalidationRouter,
    InvalidationRule,
    invalidate_tenant_cache,
)
from outfitter_tenancy.cache.keys import CacheKeys, build_cache_key, tenant_prefix
from outfitter_tenancy.cache.tenant_cache import (
    CacheStats,
    TenantAwareCache,
    WarmItem,
    cached_fetch,
)

__all__ = [
    "DEFAULT_INVALIDATION_TABLE",
    "CacheKeys",
    "CacheStats",
    "InvalidationRouter",
    "InvalidationRule",
    "TenantAwareCache",
    "WarmItem",
    "build_cache_key",
    "cached_fetch",
    "invalidate_tenant_cache",
    "tenant_prefix",
]
