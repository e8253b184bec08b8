"""API key generation and hashing utilities."""

from __future__ import annotations

import hashlib
import secrets

KEY_PREFIX = "of"


def generate_api_key(environment: str = "live") -> tuple[str, str, str]:
    """Generate API key, return (full_key, key_hash, key_prefix).

    Full key is shown only once at issue time.
    Only hash and prefix are kept by the principal store.

    Args:
        environment: Key environment, typically 'live' or 'test'.

    Returns:
        Tuple of (full_key, key_hash, key_prefix).
    """
    random_part = secrets.token_hex(16)
    full_key = f"{KEY_PREFIX}_{environment}_{random_part}"
    key_prefix = f"{KEY_PREFIX}_{environment}_{random_part[:6]}"
    return full_key, hash_api_key(full_key), key_prefix


def hash_api_key(key: str) -> str:
    """SHA-256 hex digest of an API key, used as the lookup key."""
    return hashlib.sha256(key.encode()).hexdigest()
