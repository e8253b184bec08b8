"""Security audit logging and the cross-tenant response guard."""

from outfitter_tenancy.security.audit import SecurityAuditor, SecurityEvent
from outfitter_tenancy.security.response_guard import ResponseGuard

__all__ = ["ResponseGuard", "SecurityAuditor", "SecurityEvent"]
