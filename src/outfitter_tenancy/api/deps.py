"""FastAPI dependency injection."""

from __future__ import annotations

from typing import Annotated, cast

import structlog
from fastapi import Depends, Request, Security
from fastapi.security import APIKeyHeader

from outfitter_tenancy.auth.context import Principal, TenantContext, resolve_tenant_context
from outfitter_tenancy.auth.principals import PrincipalProvider
from outfitter_tenancy.auth.rate_limiter import TenantRateLimiter
from outfitter_tenancy.cache.tenant_cache import TenantAwareCache
from outfitter_tenancy.config import Settings
from outfitter_tenancy.security.audit import SecurityAuditor, SecurityEvent
from outfitter_tenancy.storage.memory import OutfitterStore

__all__ = [
    "get_cache",
    "get_current_principal",
    "get_rate_limiter",
    "get_settings_from_app",
    "get_store",
    "get_tenant_context",
    "ScopedQueryDep",
    "tenant_scoped_query",
]

logger = structlog.get_logger()

api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)

TENANT_CONTEXT_STATE = "tenant_context"


async def get_current_principal(
    request: Request,
    api_key: str | None = Security(api_key_header),
) -> Principal | None:
    """Principal behind the presented API key, or None.

    Rejection is left to ``get_tenant_context`` so that "no credential"
    and "no tenant" fail through the same path.
    """
    if not api_key:
        return None
    provider = cast(PrincipalProvider, request.app.state.principal_store)
    return provider.authenticate(api_key)


_principal_dep = Depends(get_current_principal)


async def get_tenant_context(
    request: Request,
    principal: Principal | None = _principal_dep,
) -> TenantContext:
    """Resolve and attach the request's tenant context.

    Raises:
        MissingTenantContextError: no principal, or principal without
            an outfitter (handled as 401).
    """
    context = resolve_tenant_context(principal)
    setattr(request.state, TENANT_CONTEXT_STATE, context)
    structlog.contextvars.bind_contextvars(
        outfitter_id=context.outfitter_id,
        user_id=context.user_id,
    )
    return context


def tenant_context_from_request(request: Request) -> TenantContext | None:
    """Context attached earlier in this request, if any."""
    return cast(
        TenantContext | None,
        getattr(request.state, TENANT_CONTEXT_STATE, None),
    )


def request_origin(request: Request) -> dict[str, str | None]:
    """Client user agent and address, as recorded on security audit events."""
    return {
        "user_agent": request.headers.get("user-agent"),
        "ip": request.client.host if request.client else None,
    }


async def get_cache(request: Request) -> TenantAwareCache:
    """Retrieve the tenant cache from app state.

    Created by ``create_app``.
    """
    return cast(TenantAwareCache, request.app.state.tenant_cache)


async def get_rate_limiter(request: Request) -> TenantRateLimiter:
    return cast(TenantRateLimiter, request.app.state.rate_limiter)


async def get_store(request: Request) -> OutfitterStore:
    return cast(OutfitterStore, request.app.state.store)


async def get_settings_from_app(request: Request) -> Settings:
    return cast(Settings, request.app.state.settings)


TenantDep = Annotated[TenantContext, Depends(get_tenant_context)]
SettingsDep = Annotated[Settings, Depends(get_settings_from_app)]


async def tenant_scoped_query(
    request: Request,
    tenant: TenantDep,
    settings: SettingsDep,
) -> dict[str, str | int]:
    """Query parameters with any tenant override removed.

    Client-supplied ``outfitterId``-style parameters are dropped (and
    logged); ``outfitter_id`` is then forced to the caller's tenant.
    Asking for a different tenant is additionally audited.
    """
    query: dict[str, str | int] = dict(request.query_params)
    for param in settings.tenant_query_params:
        if param not in query:
            continue
        requested = query.pop(param)
        logger.warning(
            "tenant_query_param_stripped",
            param=param,
            requested=requested,
            path=request.url.path,
        )
        if str(requested) != str(tenant.outfitter_id):
            SecurityAuditor().log_event(
                SecurityEvent.UNAUTHORIZED_QUERY,
                user_id=tenant.user_id,
                outfitter_id=tenant.outfitter_id,
                path=request.url.path,
                requested_outfitter_id=requested,
                **request_origin(request),
            )
    query["outfitter_id"] = tenant.outfitter_id
    return query


# Resolved once per request; routers also list it in ``dependencies``
ScopedQueryDep = Annotated[dict[str, str | int], Depends(tenant_scoped_query)]
