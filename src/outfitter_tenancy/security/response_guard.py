"""Cross-tenant response guard.

Last line of defense against query bugs: any record in an outgoing
payload whose tenant tag differs from the requester's outfitter is
removed before the payload leaves the process, and the attempt is
audited. Correct tenant-scoped querying upstream is still required;
this only catches what slipped through.
"""

from __future__ import annotations

from typing import Any

import structlog

from outfitter_tenancy.auth.context import TenantContext
from outfitter_tenancy.security.audit import SecurityAuditor, SecurityEvent

logger = structlog.get_logger()

TENANT_FIELDS: tuple[str, ...] = ("outfitterId", "outfitter_id")

_UNTAGGED = object()
_DROPPED = object()


def _tenant_tag(record: dict[str, Any]) -> Any:
    for field in TENANT_FIELDS:
        if field in record:
            return record[field]
    return _UNTAGGED


def _same_tenant(tag: Any, outfitter_id: int) -> bool:
    # JSON may carry ids as strings, but only the canonical spelling
    # matches ("0102" is not 102). Anything else counts as foreign.
    if isinstance(tag, bool):
        return False
    if isinstance(tag, int):
        return tag == outfitter_id
    if isinstance(tag, str):
        return tag == str(outfitter_id)
    return False


class ResponseGuard:
    """Filters payloads against the requester's tenant context.

    Lists lose their foreign records; a foreign record anywhere else
    is replaced by ``None``. Nested containers are walked, so a correct
    booking embedding another tenant's customer loses the customer.
    """

    def __init__(self, auditor: SecurityAuditor | None = None) -> None:
        self._auditor = auditor or SecurityAuditor()

    def filter(
        self,
        payload: Any,
        context: TenantContext | None,
        path: str | None = None,
        *,
        user_agent: str | None = None,
        ip: str | None = None,
    ) -> Any:
        """Return ``payload`` with every cross-tenant record removed.

        Args:
            payload: Decoded JSON body.
            context: Requester's tenant context. Without one nothing can
                be verified and the payload is withheld.
            path: Request path, recorded in audit events.
            user_agent: Client user agent, recorded in audit events.
            ip: Client address, recorded in audit events.

        Returns:
            Filtered payload. ``None`` when the top-level record is
            foreign, when no context is present, or when filtering fails.
        """
        origin: dict[str, Any] = {"path": path, "user_agent": user_agent, "ip": ip}
        if context is None:
            self._auditor.log_event(
                SecurityEvent.ACCESS_VIOLATION,
                attempted_action="RESPONSE_WITHOUT_TENANT_CONTEXT",
                **origin,
            )
            return None

        try:
            result = self._scrub(payload, context, origin)
        except Exception:
            logger.exception("response_guard_error", path=path)
            self._auditor.log_event(
                SecurityEvent.GUARD_FAILURE,
                user_id=context.user_id,
                outfitter_id=context.outfitter_id,
                **origin,
            )
            return None
        return None if result is _DROPPED else result

    def _scrub(self, value: Any, context: TenantContext, origin: dict[str, Any]) -> Any:
        if isinstance(value, list):
            kept = []
            for item in value:
                scrubbed = self._scrub(item, context, origin)
                if scrubbed is not _DROPPED:
                    kept.append(scrubbed)
            return kept

        if isinstance(value, dict):
            tag = _tenant_tag(value)
            if tag is not _UNTAGGED and not _same_tenant(tag, context.outfitter_id):
                self._auditor.log_event(
                    SecurityEvent.CROSS_TENANT_ATTEMPT,
                    user_id=context.user_id,
                    outfitter_id=context.outfitter_id,
                    found_outfitter_id=tag,
                    attempted_action="DATA_LEAK_PREVENTION",
                    **origin,
                )
                return _DROPPED
            cleaned: dict[str, Any] = {}
            for key, item in value.items():
                scrubbed = self._scrub(item, context, origin)
                cleaned[key] = None if scrubbed is _DROPPED else scrubbed
            return cleaned

        return value
