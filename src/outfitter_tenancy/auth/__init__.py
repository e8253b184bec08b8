"""Authentication, tenant context and per-tenant rate limiting.

Note: the FastAPI dependencies (``require_role``, ``rate_limit``) live in
``auth.guards`` and are NOT re-exported here to avoid a circular import
(auth → guards → api.deps → auth).
Import directly: ``from outfitter_tenancy.auth.guards import require_role``.
"""

from outfitter_tenancy.auth.context import (
    Principal,
    Role,
    TenantContext,
    resolve_tenant_context,
)
from outfitter_tenancy.auth.keys import generate_api_key, hash_api_key
from outfitter_tenancy.auth.principals import PrincipalStore
from outfitter_tenancy.auth.rate_limiter import (
    RateLimitProfile,
    RateLimitResult,
    TenantRateLimiter,
)

__all__ = [
    "Principal",
    "PrincipalStore",
    "RateLimitProfile",
    "RateLimitResult",
    "Role",
    "TenantContext",
    "TenantRateLimiter",
    "generate_api_key",
    "hash_api_key",
    "resolve_tenant_context",
]
