"""Cache key builders. Single place for the key format.

Keys look like ``tenant:{outfitter_id}:{base_key}:{digest}``. The prefix
stays readable so pattern and tenant-wide invalidation can sweep by
prefix; only the parameter part is hashed.
"""

from __future__ import annotations

import hashlib
import json
from enum import StrEnum
from typing import Any

CACHE_KEY_SEP = ":"
TENANT_NAMESPACE = "tenant"
DIGEST_LENGTH = 16


class CacheKeys(StrEnum):
    """Base key families used by routes and the invalidation table."""

    DASHBOARD_STATS = "dashboard:stats"
    UPCOMING_BOOKINGS = "dashboard:upcoming-bookings"
    EXPERIENCES = "experiences"
    EXPERIENCE_GUIDES = "experience:guides"
    CUSTOMERS = "customers"
    LOCATIONS = "locations"
    BOOKINGS = "bookings"
    USERS = "users"
    SETTINGS = "settings"


def tenant_prefix(outfitter_id: int) -> str:
    """Prefix shared by every key of one tenant."""
    return f"{TENANT_NAMESPACE}{CACHE_KEY_SEP}{outfitter_id}{CACHE_KEY_SEP}"


def pattern_prefix(base_key_prefix: str, outfitter_id: int) -> str:
    """Prefix matching every key of a base key family for one tenant."""
    return f"{tenant_prefix(outfitter_id)}{base_key_prefix}"


def _params_digest(base_key: str, outfitter_id: int, params: Any) -> str:
    # sort_keys makes {"a": 1, "b": 2} and {"b": 2, "a": 1} the same request
    canonical = json.dumps(
        {"baseKey": base_key, "outfitterId": outfitter_id, "params": params},
        sort_keys=True,
        separators=(",", ":"),
        default=str,
    )
    return hashlib.sha256(canonical.encode()).hexdigest()[:DIGEST_LENGTH]


def build_cache_key(base_key: str, outfitter_id: int, params: Any = None) -> str:
    """Deterministic, tenant-namespaced key for ``(base_key, params)``."""
    digest = _params_digest(base_key, outfitter_id, params)
    return f"{pattern_prefix(base_key, outfitter_id)}{CACHE_KEY_SEP}{digest}"
