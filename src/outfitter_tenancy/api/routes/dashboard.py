"""Dashboard, settings and usage endpoints."""

from __future__ import annotations

from dataclasses import asdict
from typing import Annotated

import structlog
from fastapi import APIRouter, Depends

from outfitter_tenancy.api.deps import (
    TenantDep,
    get_cache,
    get_rate_limiter,
    get_store,
    tenant_scoped_query,
)
from outfitter_tenancy.api.schemas import ProfileUsage, SettingsUpdateRequest, UsageResponse
from outfitter_tenancy.auth.context import Role, TenantContext
from outfitter_tenancy.auth.guards import rate_limit, require_role
from outfitter_tenancy.auth.rate_limiter import TenantRateLimiter
from outfitter_tenancy.cache.keys import CacheKeys
from outfitter_tenancy.cache.tenant_cache import TenantAwareCache, cached_fetch
from outfitter_tenancy.models.domain import Booking, DashboardStats, OutfitterSettings
from outfitter_tenancy.storage.memory import (
    BookingRepository,
    OutfitterStore,
    SettingsRepository,
    dashboard_stats,
)

logger = structlog.get_logger()

router = APIRouter(
    prefix="/dashboard",
    tags=["dashboard"],
    dependencies=[Depends(rate_limit("default")), Depends(tenant_scoped_query)],
)

StoreDep = Annotated[OutfitterStore, Depends(get_store)]
CacheDep = Annotated[TenantAwareCache, Depends(get_cache)]
LimiterDep = Annotated[TenantRateLimiter, Depends(get_rate_limiter)]
AdminDep = Annotated[TenantContext, Depends(require_role(Role.ADMIN))]

STATS_TTL_SECONDS = 60.0


@router.get("/stats")
async def get_stats(tenant: TenantDep, store: StoreDep, cache: CacheDep) -> DashboardStats:
    return await cached_fetch(
        cache,
        CacheKeys.DASHBOARD_STATS,
        lambda: dashboard_stats(store, tenant.outfitter_id),
        tenant.outfitter_id,
        ttl=STATS_TTL_SECONDS,
    )


@router.get("/upcoming-bookings")
async def get_upcoming_bookings(
    tenant: TenantDep, store: StoreDep, cache: CacheDep
) -> list[Booking]:
    repo = BookingRepository(store, tenant.outfitter_id)
    return await cached_fetch(
        cache, CacheKeys.UPCOMING_BOOKINGS, repo.upcoming, tenant.outfitter_id
    )


@router.get("/settings")
async def read_settings(
    tenant: TenantDep, store: StoreDep, cache: CacheDep
) -> OutfitterSettings:
    repo = SettingsRepository(store, tenant.outfitter_id)
    return await cached_fetch(cache, CacheKeys.SETTINGS, repo.get, tenant.outfitter_id)


@router.put("/settings")
async def replace_settings(
    body: SettingsUpdateRequest,
    tenant: AdminDep,
    store: StoreDep,
) -> OutfitterSettings:
    """Overwrite the outfitter's settings.

    Mapped to a tenant-wide cache wipe in the invalidation table.
    """
    settings = await SettingsRepository(store, tenant.outfitter_id).replace(
        **body.model_dump()
    )
    logger.info("outfitter_settings_replaced")
    return settings


@router.get("/usage")
async def get_usage(
    tenant: AdminDep,
    limiter: LimiterDep,
    cache: CacheDep,
) -> UsageResponse:
    """Rate limit counters and cache footprint of the caller's outfitter."""
    profiles = {
        name: ProfileUsage(**asdict(limiter.get_usage_stats(tenant.outfitter_id, name)))
        for name in limiter.profiles
    }
    stats = cache.get_stats(tenant.outfitter_id)
    return UsageResponse(
        outfitter_id=tenant.outfitter_id,
        rate_limits=profiles,
        cache_entries=stats.tenant_entries or 0,
    )


@router.post("/rate-limits/reset", status_code=204)
async def reset_rate_limits(tenant: AdminDep, limiter: LimiterDep) -> None:
    """Clear the caller's own rate limit counters."""
    limiter.reset_tenant_limits(tenant.outfitter_id)
