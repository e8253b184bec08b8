"""Shared pytest fixtures."""

from collections.abc import AsyncIterator

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from outfitter_tenancy.api.app import create_app
from outfitter_tenancy.auth.context import Principal, Role, TenantContext
from outfitter_tenancy.auth.principals import PrincipalStore
from outfitter_tenancy.auth.rate_limiter import TenantRateLimiter
from outfitter_tenancy.cache.tenant_cache import TenantAwareCache
from outfitter_tenancy.config import Settings
from outfitter_tenancy.storage.memory import OutfitterStore


@pytest.fixture()
def settings() -> Settings:
    return Settings(environment="testing", _env_file=None)  # type: ignore[arg-type]


@pytest.fixture()
def principal_store() -> PrincipalStore:
    return PrincipalStore()


@pytest.fixture()
def auth_headers(principal_store: PrincipalStore) -> dict[str, dict[str, str]]:
    """X-API-Key headers by principal name."""
    keys = {
        "admin_101": principal_store.issue_key(
            Principal(id="u-101-admin", outfitter_id=101, role=Role.ADMIN), "test"
        ),
        "admin_102": principal_store.issue_key(
            Principal(id="u-102-admin", outfitter_id=102, role=Role.ADMIN), "test"
        ),
        "guide_102": principal_store.issue_key(
            Principal(id="u-102-guide", outfitter_id=102, role=Role.GUIDE), "test"
        ),
        "unattached": principal_store.issue_key(
            Principal(id="u-orphan", outfitter_id=None, role=Role.ADMIN), "test"
        ),
    }
    return {name: {"X-API-Key": key} for name, key in keys.items()}


@pytest.fixture()
def store() -> OutfitterStore:
    return OutfitterStore()


@pytest.fixture()
def cache() -> TenantAwareCache:
    return TenantAwareCache(default_ttl=60.0)


@pytest.fixture()
def rate_limiter() -> TenantRateLimiter:
    return TenantRateLimiter()


@pytest.fixture()
def test_app(
    settings: Settings,
    principal_store: PrincipalStore,
    cache: TenantAwareCache,
    rate_limiter: TenantRateLimiter,
    store: OutfitterStore,
) -> FastAPI:
    """Fresh app per test; no state shared with the module-level app."""
    return create_app(
        settings,
        principal_store=principal_store,
        cache=cache,
        rate_limiter=rate_limiter,
        store=store,
    )


@pytest.fixture()
async def client(test_app: FastAPI) -> AsyncIterator[AsyncClient]:
    async with AsyncClient(
        transport=ASGITransport(app=test_app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest.fixture()
def ctx_101() -> TenantContext:
    return TenantContext(outfitter_id=101, user_id="u-101-admin", role=Role.ADMIN)


@pytest.fixture()
def ctx_102() -> TenantContext:
    return TenantContext(outfitter_id=102, user_id="u-102-admin", role=Role.ADMIN)
