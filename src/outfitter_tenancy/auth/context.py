"""Tenant context resolved from an authenticated principal."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import TypeGuard

from outfitter_tenancy.errors import MissingTenantContextError


class Role(StrEnum):
    ADMIN = "admin"
    GUIDE = "guide"


@dataclass(frozen=True)
class Principal:
    """Authenticated user as handed over by the principal provider.

    Credential verification happens before this object exists; the
    resolver trusts its fields. ``outfitter_id`` may be missing for
    users that have not been attached to an outfitter yet.
    """

    id: str
    outfitter_id: int | None
    role: Role
    email: str | None = None


@dataclass(frozen=True)
class TenantContext:
    """Authenticated tenant context, attached once per request.

    Read-only for the remainder of the request lifecycle.
    """

    outfitter_id: int
    user_id: str
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


def is_valid_outfitter_id(value: object) -> TypeGuard[int]:
    """True for positive ints. ``True`` does not count as outfitter 1."""
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def resolve_tenant_context(principal: Principal | None) -> TenantContext:
    """Build the request's tenant context from a verified principal.

    Args:
        principal: Output of the principal provider, or None when the
            request carried no valid credential.

    Returns:
        Immutable TenantContext.

    Raises:
        MissingTenantContextError: principal absent or without a positive
            outfitter id. Never falls back to a default tenant.
    """
    if principal is None:
        raise MissingTenantContextError("Authentication required")
    outfitter_id = principal.outfitter_id
    if not is_valid_outfitter_id(outfitter_id):
        raise MissingTenantContextError(
            "Authentication required with tenant context"
        )
    return TenantContext(
        outfitter_id=outfitter_id,
        user_id=principal.id,
        role=Role(principal.role),
    )


def require_outfitter_id(outfitter_id: int | None) -> int:
    """Validate a bare tenant id passed to a tenant-aware service.

    Raises:
        MissingTenantContextError: if the id is None, zero, negative
            or not an int.
    """
    if not is_valid_outfitter_id(outfitter_id):
        raise MissingTenantContextError(f"Invalid outfitter id: {outfitter_id!r}")
    return outfitter_id
