"""Centralized application configuration via environment variables."""

from enum import StrEnum
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from outfitter_tenancy.auth.rate_limiter import RateLimitProfile, default_profiles


class Environment(StrEnum):
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TESTING = "testing"


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Rate limit profiles can be overridden as a JSON object, e.g.::

        RATE_LIMIT_PROFILES='{"api": {"window_ms": 60000, "max_requests": 50}}'

    Profiles given in the environment replace the built-in ones by name;
    built-in profiles that are not mentioned stay as they are.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # --- App ---
    environment: Environment = Environment.DEVELOPMENT
    log_level: str = "DEBUG"

    # --- CORS ---
    cors_allowed_origins: list[str] = []
    cors_allow_credentials: bool = False
    cors_allowed_methods: list[str] = ["GET", "POST", "PUT", "PATCH", "DELETE"]
    cors_allowed_headers: list[str] = ["Content-Type", "X-API-Key"]

    # --- Tenant cache ---
    cache_default_ttl_seconds: float = 300.0

    # --- Background maintenance ---
    cleanup_interval_seconds: float = 300.0

    # --- Rate limiting ---
    rate_limit_profiles: dict[str, RateLimitProfile] = Field(default_factory=dict)

    # --- Query sanitization ---
    tenant_query_params: list[str] = [
        "outfitterId",
        "outfitter_id",
        "tenantId",
        "tenant_id",
        "companyId",
        "company_id",
    ]

    def resolved_rate_limit_profiles(self) -> dict[str, RateLimitProfile]:
        """Built-in profiles merged with environment overrides."""
        return {**default_profiles(), **self.rate_limit_profiles}

    # --- Convenience properties ---
    @property
    def is_dev(self) -> bool:
        return self.environment == Environment.DEVELOPMENT

    @property
    def is_prod(self) -> bool:
        return self.environment == Environment.PRODUCTION

    @property
    def is_testing(self) -> bool:
        return self.environment == Environment.TESTING


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Cached settings singleton.

    Usage::

        from outfitter_tenancy.config import get_settings
        settings = get_settings()
    """
    return Settings()
