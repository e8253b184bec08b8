"""Experience API endpoints."""

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
from outfitter_tenancy.api.schemas import ExperienceCreateRequest, ExperienceUpdateRequest
from outfitter_tenancy.auth.context import Role, TenantContext
from outfitter_tenancy.auth.guards import rate_limit, require_role
from outfitter_tenancy.cache.keys import CacheKeys
from outfitter_tenancy.cache.tenant_cache import TenantAwareCache, cached_fetch
from outfitter_tenancy.models.domain import Experience
from outfitter_tenancy.storage.memory import ExperienceRepository, OutfitterStore

logger = structlog.get_logger()

router = APIRouter(
    tags=["experiences"],
    dependencies=[Depends(rate_limit("api")), Depends(tenant_scoped_query)],
)

StoreDep = Annotated[OutfitterStore, Depends(get_store)]
CacheDep = Annotated[TenantAwareCache, Depends(get_cache)]
AdminDep = Annotated[TenantContext, Depends(require_role(Role.ADMIN))]


@router.get("/experiences")
async def list_experiences(
    tenant: TenantDep,
    store: StoreDep,
    cache: CacheDep,
    query: ScopedQueryDep,
    location_id: Annotated[int | None, Query(alias="locationId")] = None,
) -> list[Experience]:
    """List the caller's experiences, optionally for one location.

    Any ``outfitterId`` query parameter is ignored; the tenant comes
    from the authenticated context only. The cache entry is keyed by
    the sanitized query, so a stripped override shares the entry of
    the plain request.
    """
    repo = ExperienceRepository(store, tenant.outfitter_id)
    return await cached_fetch(
        cache,
        CacheKeys.EXPERIENCES,
        lambda: repo.list(location_id),
        tenant.outfitter_id,
        params=query,
    )


@router.get("/experiences/{experience_id}")
async def get_experience(
    experience_id: int,
    tenant: TenantDep,
    store: StoreDep,
) -> Experience:
    experience = await ExperienceRepository(store, tenant.outfitter_id).get(experience_id)
    if experience is None:
        raise HTTPException(status_code=404, detail="Experience not found")
    return experience


@router.post("/experiences", status_code=201)
async def create_experience(
    body: ExperienceCreateRequest,
    tenant: AdminDep,
    store: StoreDep,
) -> Experience:
    experience = await ExperienceRepository(store, tenant.outfitter_id).create(
        **body.model_dump()
    )
    logger.info("experience_created", experience_id=experience.id)
    return experience


@router.put("/experiences/{experience_id}")
async def update_experience(
    experience_id: int,
    body: ExperienceUpdateRequest,
    tenant: AdminDep,
    store: StoreDep,
) -> Experience:
    updated = await ExperienceRepository(store, tenant.outfitter_id).update(
        experience_id, **body.model_dump(exclude_unset=True)
    )
    if updated is None:
        raise HTTPException(status_code=404, detail="Experience not found")
    return updated


@router.delete("/experiences/{experience_id}", status_code=204)
async def delete_experience(
    experience_id: int,
    tenant: AdminDep,
    store: StoreDep,
) -> None:
    deleted = await ExperienceRepository(store, tenant.outfitter_id).delete(experience_id)
    if not deleted:
        raise HTTPException(status_code=404, detail="Experience not found")
