"""In-memory principal provider keyed by hashed API keys."""

from __future__ import annotations

from dataclasses import dataclass
from threading import Lock
from typing import Protocol

import structlog

from outfitter_tenancy.auth.context import Principal
from outfitter_tenancy.auth.keys import generate_api_key, hash_api_key

logger = structlog.get_logger()


class PrincipalProvider(Protocol):
    """Anything that can turn a presented credential into a principal."""

    def authenticate(self, api_key: str) -> Principal | None: ...


@dataclass
class _KeyRecord:
    principal: Principal
    key_prefix: str
    is_active: bool = True


class PrincipalStore:
    """Principals registered against issued API keys.

    Only the SHA-256 hash of each key is kept. Single-process; a
    database-backed provider can replace it behind PrincipalProvider.
    """

    def __init__(self) -> None:
        self._records: dict[str, _KeyRecord] = {}
        self._lock = Lock()

    def issue_key(self, principal: Principal, environment: str = "live") -> str:
        """Register ``principal`` and return its full API key (shown once)."""
        full_key, key_hash, key_prefix = generate_api_key(environment)
        with self._lock:
            self._records[key_hash] = _KeyRecord(principal, key_prefix)
        logger.info(
            "api_key_issued",
            key_prefix=key_prefix,
            user_id=principal.id,
            outfitter_id=principal.outfitter_id,
        )
        return full_key

    def authenticate(self, api_key: str) -> Principal | None:
        record = self._records.get(hash_api_key(api_key))
        if record is None or not record.is_active:
            return None
        return record.principal

    def revoke(self, key_prefix: str) -> bool:
        """Deactivate the key with ``key_prefix``. Returns False if unknown."""
        with self._lock:
            for record in self._records.values():
                if record.key_prefix == key_prefix and record.is_active:
                    record.is_active = False
                    logger.info("api_key_revoked", key_prefix=key_prefix)
                    return True
        return False

    def list_prefixes(self, outfitter_id: int) -> list[str]:
        return [
            r.key_prefix
            for r in self._records.values()
            if r.principal.outfitter_id == outfitter_id and r.is_active
        ]
