"""Maps mutating routes to the cache key families they make stale."""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

import structlog
from starlette.routing import BaseRoute, Route, compile_path

from outfitter_tenancy.cache.keys import CacheKeys
from outfitter_tenancy.cache.tenant_cache import TenantCacheProtocol

logger = structlog.get_logger()

MUTATING_METHODS: frozenset[str] = frozenset({"POST", "PUT", "PATCH", "DELETE"})

API_PREFIX = "/api/v1"


@dataclass(frozen=True)
class InvalidationRule:
    """What to drop for the tenant after a successful mutation.

    ``patterns`` are base key prefixes swept with ``invalidate_pattern``;
    ``specific`` are exact base keys (no params) dropped one by one.
    ``invalidate_all`` wipes the whole tenant namespace instead.
    """

    patterns: tuple[str, ...] = ()
    specific: tuple[str, ...] = ()
    invalidate_all: bool = False


RouteKey = tuple[str, str]

_BOOKING_RULE = InvalidationRule(
    patterns=(CacheKeys.BOOKINGS, CacheKeys.DASHBOARD_STATS, CacheKeys.UPCOMING_BOOKINGS)
)

DEFAULT_INVALIDATION_TABLE: dict[RouteKey, InvalidationRule] = {
    # Bookings
    ("POST", f"{API_PREFIX}/bookings"): _BOOKING_RULE,
    ("PUT", f"{API_PREFIX}/bookings/{{booking_id}}"): _BOOKING_RULE,
    ("DELETE", f"{API_PREFIX}/bookings/{{booking_id}}"): _BOOKING_RULE,
    # Customers
    ("POST", f"{API_PREFIX}/customers"): InvalidationRule(
        patterns=(CacheKeys.CUSTOMERS, CacheKeys.DASHBOARD_STATS)
    ),
    ("DELETE", f"{API_PREFIX}/customers/{{customer_id}}"): InvalidationRule(
        patterns=(CacheKeys.CUSTOMERS, CacheKeys.DASHBOARD_STATS)
    ),
    # Experiences
    ("POST", f"{API_PREFIX}/experiences"): InvalidationRule(
        patterns=(CacheKeys.EXPERIENCES, CacheKeys.DASHBOARD_STATS)
    ),
    ("PUT", f"{API_PREFIX}/experiences/{{experience_id}}"): InvalidationRule(
        patterns=(CacheKeys.EXPERIENCES, CacheKeys.EXPERIENCE_GUIDES)
    ),
    ("DELETE", f"{API_PREFIX}/experiences/{{experience_id}}"): InvalidationRule(
        patterns=(
            CacheKeys.EXPERIENCES,
            CacheKeys.EXPERIENCE_GUIDES,
            CacheKeys.DASHBOARD_STATS,
        )
    ),
    # Settings overwrite touches everything rendered for the tenant
    ("PUT", f"{API_PREFIX}/dashboard/settings"): InvalidationRule(invalidate_all=True),
    # Counter reset does not touch cached data
    ("POST", f"{API_PREFIX}/dashboard/rate-limits/reset"): InvalidationRule(),
}


@dataclass
class InvalidationRouter:
    """Explicit allow-list from ``(method, route path)`` to invalidation rules.

    Table keys are full route templates including the API prefix
    (``/api/v1/experiences/{experience_id}``). Requests are matched by
    their concrete URL path against the compiled templates, so lookup
    does not depend on how the framework reports the matched route.
    """

    cache: TenantCacheProtocol
    table: Mapping[RouteKey, InvalidationRule] = field(
        default_factory=lambda: dict(DEFAULT_INVALIDATION_TABLE)
    )
    _warned: set[RouteKey] = field(default_factory=set, init=False, repr=False)
    _compiled: list[tuple[str, re.Pattern[str], str]] = field(
        default_factory=list, init=False, repr=False
    )

    def __post_init__(self) -> None:
        for method, template in self.table:
            regex, _, _ = compile_path(template)
            self._compiled.append((method.upper(), regex, template))

    def resolve(self, method: str, path: str) -> tuple[str, InvalidationRule] | None:
        """Template and rule matching a concrete request path, if any."""
        method = method.upper()
        for rule_method, regex, template in self._compiled:
            if rule_method == method and regex.match(path):
                return template, self.table[(rule_method, template)]
        return None

    def lookup(
        self, method: str, path: str, *, route_label: str | None = None
    ) -> InvalidationRule | None:
        """Rule for the request, warning once per unmapped mutating route.

        ``route_label`` names the route in the warning (usually its
        template) so concrete ids do not produce one warning each.
        """
        resolved = self.resolve(method, path)
        if resolved is not None:
            return resolved[1]
        key = (method.upper(), route_label or path)
        if key[0] in MUTATING_METHODS and key not in self._warned:
            self._warned.add(key)
            logger.warning(
                "cache_invalidation_mapping_missing",
                method=key[0],
                route=key[1],
            )
        return None

    def apply(self, rule: InvalidationRule, outfitter_id: int) -> int:
        """Drop everything ``rule`` names for the tenant. Returns entries removed."""
        if rule.invalidate_all:
            return self.cache.invalidate_all(outfitter_id)
        removed = 0
        for pattern in rule.patterns:
            removed += self.cache.invalidate_pattern(pattern, outfitter_id)
        for key in rule.specific:
            self.cache.invalidate(key, outfitter_id)
        return removed

    async def run(self, rule: InvalidationRule, outfitter_id: int, route: str) -> None:
        """Background entry point; failures are logged, never raised."""
        try:
            removed = self.apply(rule, outfitter_id)
        except Exception:
            logger.exception(
                "cache_invalidation_failed", outfitter_id=outfitter_id, route=route
            )
            return
        logger.debug(
            "cache_invalidated",
            outfitter_id=outfitter_id,
            route=route,
            patterns=list(rule.patterns),
            invalidate_all=rule.invalidate_all,
            removed=removed,
        )

    def unmapped_routes(
        self, routes: Iterable[BaseRoute], prefix: str = ""
    ) -> list[RouteKey]:
        """Mutating routes with no rule; logged at startup as a development signal.

        ``routes`` are taken from an ``APIRouter`` as declared, and
        ``prefix`` is the prefix it is included under.
        """
        missing: list[RouteKey] = []
        for route in routes:
            if not isinstance(route, Route) or not route.methods:
                continue
            full_path = f"{prefix}{route.path}"
            for method in sorted(route.methods & MUTATING_METHODS):
                if (method, full_path) not in self.table:
                    missing.append((method, full_path))
        return missing


def invalidate_tenant_cache(
    cache: TenantCacheProtocol,
    outfitter_id: int,
    patterns: Iterable[str],
    specific: Iterable[str] = (),
) -> None:
    """Manual invalidation from service code.

    Unlike the background path, errors propagate to the caller.
    """
    try:
        for pattern in patterns:
            cache.invalidate_pattern(pattern, outfitter_id)
        for key in specific:
            cache.invalidate(key, outfitter_id)
    except Exception:
        logger.exception("manual_cache_invalidation_failed", outfitter_id=outfitter_id)
        raise
    logger.debug("manual_cache_invalidation", outfitter_id=outfitter_id)
