"""Role enforcement and per-tenant rate limiting dependency factories."""

from collections.abc import Callable, Coroutine
from typing import Any

import structlog
from fastapi import Depends, Response

from outfitter_tenancy.api.deps import get_rate_limiter, get_tenant_context
from outfitter_tenancy.auth.context import Role, TenantContext
from outfitter_tenancy.auth.rate_limiter import (
    DEFAULT_PROFILE,
    TenantRateLimiter,
    rate_limit_headers,
)
from outfitter_tenancy.errors import InsufficientRoleError, RateLimitExceededError

logger = structlog.get_logger()

_tenant_dep = Depends(get_tenant_context)
_limiter_dep = Depends(get_rate_limiter)


def require_role(
    *roles: Role,
) -> Callable[..., Coroutine[Any, Any, TenantContext]]:
    """Dependency factory: require one of ``roles``.

    Usage::

        async def endpoint(
            tenant: TenantContext = Depends(require_role(Role.ADMIN)),
        ): ...

    Raises:
        InsufficientRoleError: handled as 403. Orthogonal to tenant
            isolation; the tenant context is resolved first.
    """

    async def _check_role(tenant: TenantContext = _tenant_dep) -> TenantContext:
        if tenant.role not in roles:
            logger.info(
                "role_denied",
                required=[str(r) for r in roles],
                role=str(tenant.role),
            )
            raise InsufficientRoleError(tuple(str(r) for r in roles), str(tenant.role))
        return tenant

    return _check_role


def rate_limit(
    profile_name: str = DEFAULT_PROFILE,
) -> Callable[..., Coroutine[Any, Any, TenantContext]]:
    """Dependency factory: count the request against the tenant's limits.

    Advisory ``X-RateLimit-*`` and ``X-Tenant-ID`` headers are set on the
    response whether the request is allowed or not.

    Raises:
        RateLimitExceededError: handled as 429 with ``retryAfter``.
    """

    async def _check_limit(
        response: Response,
        tenant: TenantContext = _tenant_dep,
        limiter: TenantRateLimiter = _limiter_dep,
    ) -> TenantContext:
        result = limiter.check_limit(tenant.outfitter_id, profile_name)
        headers = rate_limit_headers(result, tenant.outfitter_id)

        if not result.allowed:
            logger.warning(
                "rate_limit_exceeded",
                profile=profile_name,
                reason=result.message,
                retry_after=result.retry_after,
            )
            raise RateLimitExceededError(
                message=result.message or "Too many requests",
                retry_after=result.retry_after,
                headers=headers,
                daily_remaining=result.daily_remaining,
            )

        response.headers.update(headers)
        return tenant

    return _check_limit
