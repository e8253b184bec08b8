"""Security audit events for tenant isolation violations."""

from __future__ import annotations

from enum import StrEnum
from typing import Any

import structlog

logger = structlog.get_logger("outfitter_tenancy.security")


class SecurityEvent(StrEnum):
    ACCESS_VIOLATION = "ACCESS_VIOLATION"
    CROSS_TENANT_ATTEMPT = "CROSS_TENANT_ATTEMPT"
    UNAUTHORIZED_QUERY = "UNAUTHORIZED_QUERY"
    CACHE_ISOLATION_BREACH = "CACHE_ISOLATION_BREACH"
    GUARD_FAILURE = "GUARD_FAILURE"


class SecurityAuditor:
    """Emits high-severity audit events through structlog.

    Every event is logged at error level with ``severity="HIGH"`` and a
    ``security_event`` field, so log pipelines can alert on it. Event
    payloads carry tenant ids and paths only, never record contents.
    """

    def log_event(self, event: SecurityEvent, **details: Any) -> None:
        logger.error(
            "security_audit",
            security_event=str(event),
            severity="HIGH",
            **{k: v for k, v in details.items() if v is not None},
        )
