"""Customer API endpoints."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException

from outfitter_tenancy.api.deps import (
    ScopedQueryDep,
    TenantDep,
    get_cache,
    get_store,
    tenant_scoped_query,
)
from outfitter_tenancy.api.schemas import CustomerCreateRequest
from outfitter_tenancy.auth.context import Role, TenantContext
from outfitter_tenancy.auth.guards import rate_limit, require_role
from outfitter_tenancy.cache.keys import CacheKeys
from outfitter_tenancy.cache.tenant_cache import TenantAwareCache, cached_fetch
from outfitter_tenancy.models.domain import Customer
from outfitter_tenancy.storage.memory import CustomerRepository, OutfitterStore

router = APIRouter(
    tags=["customers"],
    dependencies=[Depends(rate_limit("api")), Depends(tenant_scoped_query)],
)

StoreDep = Annotated[OutfitterStore, Depends(get_store)]
CacheDep = Annotated[TenantAwareCache, Depends(get_cache)]
AdminDep = Annotated[TenantContext, Depends(require_role(Role.ADMIN))]


@router.get("/customers")
async def list_customers(
    tenant: TenantDep,
    store: StoreDep,
    cache: CacheDep,
    query: ScopedQueryDep,
) -> list[Customer]:
    repo = CustomerRepository(store, tenant.outfitter_id)
    return await cached_fetch(
        cache, CacheKeys.CUSTOMERS, repo.list, tenant.outfitter_id, params=query
    )


@router.get("/customers/{customer_id}")
async def get_customer(
    customer_id: int,
    tenant: TenantDep,
    store: StoreDep,
) -> Customer:
    customer = await CustomerRepository(store, tenant.outfitter_id).get(customer_id)
    if customer is None:
        raise HTTPException(status_code=404, detail="Customer not found")
    return customer


@router.post("/customers", status_code=201)
async def create_customer(
    body: CustomerCreateRequest,
    tenant: TenantDep,
    store: StoreDep,
) -> Customer:
    return await CustomerRepository(store, tenant.outfitter_id).create(**body.model_dump())


@router.delete("/customers/{customer_id}", status_code=204)
async def delete_customer(
    customer_id: int,
    tenant: AdminDep,
    store: StoreDep,
) -> None:
    if not await CustomerRepository(store, tenant.outfitter_id).delete(customer_id):
        raise HTTPException(status_code=404, detail="Customer not found")
