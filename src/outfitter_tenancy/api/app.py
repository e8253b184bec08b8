"""FastAPI application factory with lifespan management.

``create_app`` is the composition root: it owns the process-wide cache,
rate limiter, principal store and storage, and exposes them to
dependencies through ``app.state``. Tests build their own app with
injected instances.
"""

import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import UTC, datetime

import structlog
from fastapi import APIRouter, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from outfitter_tenancy.api.middleware import (
    CacheInvalidationMiddleware,
    RequestLoggingMiddleware,
    ResponseGuardMiddleware,
    SecurityHeadersMiddleware,
)
from outfitter_tenancy.api.routes.bookings import router as bookings_router
from outfitter_tenancy.api.routes.customers import router as customers_router
from outfitter_tenancy.api.routes.dashboard import router as dashboard_router
from outfitter_tenancy.api.routes.experiences import router as experiences_router
from outfitter_tenancy.auth.principals import PrincipalStore
from outfitter_tenancy.auth.rate_limiter import TenantRateLimiter
from outfitter_tenancy.cache.invalidation import (
    API_PREFIX,
    InvalidationRouter,
    InvalidationRule,
    RouteKey,
)
from outfitter_tenancy.cache.tenant_cache import TenantAwareCache
from outfitter_tenancy.config import Settings, get_settings
from outfitter_tenancy.errors import (
    InsufficientRoleError,
    MissingTenantContextError,
    RateLimitExceededError,
)
from outfitter_tenancy.logging_config import configure_logging
from outfitter_tenancy.storage.memory import OutfitterStore

logger = structlog.get_logger()

# Included under API_PREFIX, in this order
API_ROUTERS: tuple[APIRouter, ...] = (
    experiences_router,
    customers_router,
    bookings_router,
    dashboard_router,
)


async def _cleanup_loop(
    limiter: TenantRateLimiter,
    cache: TenantAwareCache,
    interval: float,
) -> None:
    """Periodic cleanup of idle rate limit entries and expired cache entries."""
    while True:
        await asyncio.sleep(interval)
        try:
            keys_removed = limiter.cleanup()
            entries_purged = cache.purge_expired()
            if keys_removed or entries_purged:
                logger.debug(
                    "maintenance_cleanup",
                    rate_limit_keys_removed=keys_removed,
                    cache_entries_purged=entries_purged,
                )
        except Exception:
            logger.exception("maintenance_cleanup_error")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Manage application startup and shutdown.

    Startup:
        - Configure logging.
        - Warn about mutating routes without an invalidation mapping.
        - Start the maintenance cleanup task.
    Shutdown:
        - Cancel cleanup task.
    """
    settings: Settings = app.state.settings
    configure_logging(
        environment=str(settings.environment),
        log_level=settings.log_level,
    )

    router: InvalidationRouter = app.state.invalidation_router
    for api_router in API_ROUTERS:
        for method, path in router.unmapped_routes(api_router.routes, prefix=API_PREFIX):
            logger.warning("cache_invalidation_mapping_missing", method=method, route=path)

    cleanup_task = asyncio.create_task(
        _cleanup_loop(
            app.state.rate_limiter,
            app.state.tenant_cache,
            settings.cleanup_interval_seconds,
        )
    )

    logger.info("app_started", environment=str(settings.environment))
    yield

    cleanup_task.cancel()
    logger.info("app_stopped")


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(MissingTenantContextError)
    async def missing_tenant_handler(
        request: Request, exc: MissingTenantContextError
    ) -> JSONResponse:
        logger.info("tenant_context_missing", path=request.url.path, reason=exc.reason)
        return JSONResponse(status_code=401, content={"error": exc.reason})

    @app.exception_handler(InsufficientRoleError)
    async def insufficient_role_handler(
        request: Request, exc: InsufficientRoleError
    ) -> JSONResponse:
        return JSONResponse(status_code=403, content={"error": "Insufficient permissions"})

    @app.exception_handler(RateLimitExceededError)
    async def rate_limit_handler(
        request: Request, exc: RateLimitExceededError
    ) -> JSONResponse:
        content: dict[str, object] = {
            "error": "Rate limit exceeded",
            "message": exc.message,
            "retryAfter": exc.retry_after,
        }
        if exc.daily_remaining is not None:
            content["dailyQuotaRemaining"] = exc.daily_remaining
        return JSONResponse(
            status_code=429,
            content=content,
            headers={**exc.headers, "Retry-After": str(exc.retry_after)},
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(
        request: Request,
        exc: Exception,
    ) -> JSONResponse:
        """Catch-all handler for unhandled exceptions."""
        logger.error("unhandled_exception", exc_info=exc, path=request.url.path)
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )


def create_app(
    settings: Settings | None = None,
    *,
    principal_store: PrincipalStore | None = None,
    cache: TenantAwareCache | None = None,
    rate_limiter: TenantRateLimiter | None = None,
    store: OutfitterStore | None = None,
    invalidation_table: dict[RouteKey, InvalidationRule] | None = None,
) -> FastAPI:
    """Build the application and its process-wide services.

    Every service can be injected; anything not given is created from
    ``settings``.
    """
    settings = settings or get_settings()
    cache = cache or TenantAwareCache(default_ttl=settings.cache_default_ttl_seconds)
    invalidation_router = (
        InvalidationRouter(cache, invalidation_table)
        if invalidation_table is not None
        else InvalidationRouter(cache)
    )

    app = FastAPI(
        title="Outfitter Tenancy",
        description="Tenant-isolated booking API for outfitters",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.principal_store = principal_store or PrincipalStore()
    app.state.tenant_cache = cache
    app.state.rate_limiter = rate_limiter or TenantRateLimiter(
        settings.resolved_rate_limit_profiles()
    )
    app.state.store = store or OutfitterStore()
    app.state.invalidation_router = invalidation_router

    # Last added runs first
    app.add_middleware(ResponseGuardMiddleware)
    app.add_middleware(CacheInvalidationMiddleware, router=invalidation_router)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allowed_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allowed_methods,
        allow_headers=settings.cors_allowed_headers,
    )

    @app.get("/health")
    async def health() -> JSONResponse:
        """Liveness plus in-memory service footprint."""
        return JSONResponse(
            status_code=200,
            content={
                "status": "ok",
                "cache_entries": cache.get_stats().total_entries,
                "timestamp": datetime.now(UTC).isoformat(timespec="seconds"),
            },
        )

    _register_exception_handlers(app)

    for api_router in API_ROUTERS:
        app.include_router(api_router, prefix=API_PREFIX)
    return app


app = create_app()
