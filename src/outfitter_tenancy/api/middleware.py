"""HTTP middleware: request logging, response guard, cache invalidation,
security headers.

Order in ``create_app`` (outermost first): CORS, request logging,
security headers, cache invalidation, response guard. The guard sits
innermost so invalidation sees the final response object and can attach
its background task to it.
"""

import json
import time
from typing import Any

import structlog
from starlette.background import BackgroundTask, BackgroundTasks
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from outfitter_tenancy.api.deps import (
    TENANT_CONTEXT_STATE,
    request_origin,
    tenant_context_from_request,
)
from outfitter_tenancy.cache.invalidation import MUTATING_METHODS, InvalidationRouter
from outfitter_tenancy.security.audit import SecurityAuditor, SecurityEvent
from outfitter_tenancy.security.response_guard import ResponseGuard

logger = structlog.get_logger()


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log HTTP requests with method, path, status code, tenant and latency."""

    SKIP_PATHS: frozenset[str] = frozenset(
        {"/health", "/docs", "/openapi.json", "/redoc"}
    )

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        """Process request and log timing information."""
        structlog.contextvars.clear_contextvars()
        if request.url.path in self.SKIP_PATHS:
            return await call_next(request)

        start = time.perf_counter()
        response = await call_next(request)
        latency_ms = int((time.perf_counter() - start) * 1000)

        context = tenant_context_from_request(request)
        logger.info(
            "http_request",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            latency_ms=latency_ms,
            outfitter_id=context.outfitter_id if context else None,
        )
        return response


_REWRITTEN_HEADERS = frozenset({b"content-length", b"content-type"})


def _is_json(response: Response) -> bool:
    content_type = response.headers.get("content-type", "")
    return content_type.split(";")[0].strip() == "application/json"


class ResponseGuardMiddleware(BaseHTTPMiddleware):
    """Run every JSON body of a tenant-scoped request through the guard.

    Requests without a resolved tenant context (health, public routes,
    rejected auth) pass through untouched. Bodies that claim to be JSON
    but cannot be decoded are withheld.
    """

    def __init__(
        self,
        app: ASGIApp,
        guard: ResponseGuard | None = None,
        auditor: SecurityAuditor | None = None,
    ) -> None:
        super().__init__(app)
        self._auditor = auditor or SecurityAuditor()
        self._guard = guard or ResponseGuard(self._auditor)

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        response = await call_next(request)
        context = tenant_context_from_request(request)
        if context is None or not _is_json(response):
            return response

        body = b"".join([chunk async for chunk in response.body_iterator])  # type: ignore[attr-defined]
        if not body:
            return response

        path = request.url.path
        origin = request_origin(request)
        try:
            payload: Any = json.loads(body)
        except ValueError:
            self._auditor.log_event(
                SecurityEvent.GUARD_FAILURE,
                user_id=context.user_id,
                outfitter_id=context.outfitter_id,
                path=path,
                attempted_action="UNDECODABLE_JSON_BODY",
                **origin,
            )
            payload = None
        else:
            payload = self._guard.filter(payload, context, path=path, **origin)

        filtered = JSONResponse(
            content=payload,
            status_code=response.status_code,
            background=response.background,
        )
        passthrough = [
            (name, value)
            for name, value in response.raw_headers
            if name.lower() not in _REWRITTEN_HEADERS
        ]
        filtered.raw_headers = passthrough + filtered.raw_headers
        return filtered


class CacheInvalidationMiddleware(BaseHTTPMiddleware):
    """Schedule cache invalidation after successful mutating requests.

    The invalidation runs as a background task of the response, i.e.
    after the body has been sent to the client.
    """

    def __init__(self, app: ASGIApp, router: InvalidationRouter | None = None) -> None:
        super().__init__(app)
        self._router = router

    def _invalidation_router(self, request: Request) -> InvalidationRouter:
        if self._router is not None:
            return self._router
        router: InvalidationRouter = request.app.state.invalidation_router
        return router

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        response = await call_next(request)

        if request.method not in MUTATING_METHODS:
            return response
        if not 200 <= response.status_code < 300:
            return response
        context = tenant_context_from_request(request)
        if context is None:
            return response

        path = request.url.path
        router = self._invalidation_router(request)
        resolved = router.resolve(request.method, path)
        if resolved is None:
            route = request.scope.get("route")
            router.lookup(request.method, path, route_label=getattr(route, "path", None))
            return response

        template, rule = resolved
        task = BackgroundTask(
            router.run, rule, context.outfitter_id, f"{request.method} {template}"
        )
        if response.background is None:
            response.background = task
        else:
            response.background = BackgroundTasks(tasks=[response.background, task])
        return response


DEFAULT_SECURITY_HEADERS: dict[str, str] = {
    "Cache-Control": "no-store, no-cache, must-revalidate, private",
    "Pragma": "no-cache",
    "Expires": "0",
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
}


class SecurityHeadersMiddleware:
    """Set no-store and hardening headers on all responses. Raw ASGI.

    Tenant-scoped responses additionally get ``X-Tenant-Isolated``.
    """

    def __init__(self, app: ASGIApp, headers: dict[str, str] | None = None) -> None:
        self.app = app
        resolved = headers if headers is not None else DEFAULT_SECURITY_HEADERS
        self._header_list = [(k.lower().encode(), v.encode()) for k, v in resolved.items()]

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        async def send_wrapper(message: Message) -> None:
            if message["type"] == "http.response.start":
                headers = list(message.get("headers", []))
                seen = {name.lower() for name, _ in headers}
                for name, value in self._header_list:
                    if name not in seen:
                        headers.append((name, value))
                context = scope.get("state", {}).get(TENANT_CONTEXT_STATE)
                if context is not None:
                    headers.append(
                        (b"x-tenant-isolated", f"outfitter-{context.outfitter_id}".encode())
                    )
                message["headers"] = headers
            await send(message)

        await self.app(scope, receive, send_wrapper)


