"""Booking API endpoints."""

from __future__ import annotations

from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query

from outfitter_tenancy.api.deps import (
    ScopedQueryDep,
    TenantDep,
    get_cache,
    get_store,
    tenant_scoped_query,
)
from outfitter_tenancy.api.schemas import BookingCreateRequest, BookingStatusUpdateRequest
from outfitter_tenancy.auth.guards import rate_limit
from outfitter_tenancy.cache.keys import CacheKeys
from outfitter_tenancy.cache.tenant_cache import TenantAwareCache, cached_fetch
from outfitter_tenancy.models.domain import Booking, BookingStatus
from outfitter_tenancy.storage.memory import (
    BookingRepository,
    CustomerRepository,
    ExperienceRepository,
    OutfitterStore,
)

logger = structlog.get_logger()

router = APIRouter(
    tags=["bookings"],
    dependencies=[Depends(rate_limit("api")), Depends(tenant_scoped_query)],
)

StoreDep = Annotated[OutfitterStore, Depends(get_store)]
CacheDep = Annotated[TenantAwareCache, Depends(get_cache)]


@router.get("/bookings")
async def list_bookings(
    tenant: TenantDep,
    store: StoreDep,
    cache: CacheDep,
    query: ScopedQueryDep,
    status: Annotated[BookingStatus | None, Query()] = None,
) -> list[Booking]:
    repo = BookingRepository(store, tenant.outfitter_id)
    return await cached_fetch(
        cache,
        CacheKeys.BOOKINGS,
        lambda: repo.list(status),
        tenant.outfitter_id,
        params=query,
    )


@router.post("/bookings", status_code=201)
async def create_booking(
    body: BookingCreateRequest,
    tenant: TenantDep,
    store: StoreDep,
) -> Booking:
    """Create a booking for one of the caller's experiences and customers.

    Referenced ids that belong to another outfitter are reported as not
    found, same as ids that do not exist.
    """
    experience = await ExperienceRepository(store, tenant.outfitter_id).get(
        body.experience_id
    )
    if experience is None:
        raise HTTPException(status_code=404, detail="Experience not found")
    customer = await CustomerRepository(store, tenant.outfitter_id).get(body.customer_id)
    if customer is None:
        raise HTTPException(status_code=404, detail="Customer not found")
    if body.group_size > experience.capacity:
        raise HTTPException(status_code=422, detail="Group size exceeds capacity")

    booking = await BookingRepository(store, tenant.outfitter_id).create(
        **body.model_dump()
    )
    logger.info("booking_created", booking_id=booking.id, experience_id=experience.id)
    return booking


@router.put("/bookings/{booking_id}")
async def update_booking_status(
    booking_id: int,
    body: BookingStatusUpdateRequest,
    tenant: TenantDep,
    store: StoreDep,
) -> Booking:
    updated = await BookingRepository(store, tenant.outfitter_id).update_status(
        booking_id, body.status
    )
    if updated is None:
        raise HTTPException(status_code=404, detail="Booking not found")
    return updated


@router.delete("/bookings/{booking_id}", status_code=204)
async def delete_booking(
    booking_id: int,
    tenant: TenantDep,
    store: StoreDep,
) -> None:
    if not await BookingRepository(store, tenant.outfitter_id).delete(booking_id):
        raise HTTPException(status_code=404, detail="Booking not found")
