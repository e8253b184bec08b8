"""Tests for the response guard, cache invalidation, security header and request
logging middleware."""

from datetime import UTC, datetime
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

from fastapi import APIRouter, FastAPI, Request, Response
from httpx import ASGITransport, AsyncClient
from structlog.testing import capture_logs

from outfitter_tenancy.api.app import create_app
from outfitter_tenancy.api.deps import TenantDep
from outfitter_tenancy.auth.principals import PrincipalStore
from outfitter_tenancy.cache.invalidation import InvalidationRule
from outfitter_tenancy.cache.keys import CacheKeys
from outfitter_tenancy.cache.tenant_cache import TenantAwareCache
from outfitter_tenancy.config import Settings
from outfitter_tenancy.models.domain import Experience

Headers = dict[str, dict[str, str]]

_LIST = "outfitter_tenancy.api.routes.experiences.ExperienceRepository.list"
_GET = "outfitter_tenancy.api.routes.experiences.ExperienceRepository.get"


def _experience(id_: int, outfitter_id: int) -> Experience:
    return Experience(
        id=id_,
        outfitter_id=outfitter_id,
        name=f"Trip {id_}",
        created_at=datetime(2026, 1, 1, tzinfo=UTC),
    )


class TestResponseGuardMiddleware:
    async def test_leaked_rows_are_removed(
        self, client: AsyncClient, auth_headers: Headers
    ) -> None:
        """A query bug returning other tenants' rows never reaches the client."""
        leaky = AsyncMock(return_value=[_experience(1, 101), _experience(2, 102)])
        with patch(_LIST, new=leaky), capture_logs() as logs:
            response = await client.get(
                "/api/v1/experiences", headers=auth_headers["admin_102"]
            )

        assert response.status_code == 200
        assert [e["id"] for e in response.json()] == [2]

        audit = [e for e in logs if e["event"] == "security_audit"]
        assert len(audit) == 1
        assert audit[0]["security_event"] == "CROSS_TENANT_ATTEMPT"
        assert audit[0]["outfitter_id"] == 102
        assert audit[0]["found_outfitter_id"] == 101
        assert audit[0]["path"] == "/api/v1/experiences"
        assert audit[0]["user_id"] == "u-102-admin"

    async def test_audit_records_client_origin(
        self, client: AsyncClient, auth_headers: Headers
    ) -> None:
        leaky = AsyncMock(return_value=[_experience(1, 101)])
        headers = {**auth_headers["admin_102"], "User-Agent": "ridge-app/2.1"}
        with patch(_LIST, new=leaky), capture_logs() as logs:
            await client.get("/api/v1/experiences", headers=headers)

        [audit] = [e for e in logs if e["event"] == "security_audit"]
        assert audit["user_agent"] == "ridge-app/2.1"
        # httpx ASGITransport reports 127.0.0.1 as the client
        assert audit["ip"] == "127.0.0.1"

    async def test_leaked_single_record_becomes_null(
        self, client: AsyncClient, auth_headers: Headers
    ) -> None:
        with patch(_GET, new=AsyncMock(return_value=_experience(1, 101))):
            response = await client.get(
                "/api/v1/experiences/1", headers=auth_headers["admin_102"]
            )

        assert response.status_code == 200
        assert response.json() is None

    async def test_headers_survive_filtering(
        self, client: AsyncClient, auth_headers: Headers
    ) -> None:
        with patch(_LIST, new=AsyncMock(return_value=[_experience(1, 101)])):
            response = await client.get(
                "/api/v1/experiences", headers=auth_headers["admin_102"]
            )

        assert response.json() == []
        assert response.headers["x-tenant-id"] == "102"
        assert response.headers["content-type"] == "application/json"
        assert response.headers["content-length"] == "2"

    async def test_undecodable_json_is_withheld(
        self, test_app: FastAPI, client: AsyncClient, auth_headers: Headers
    ) -> None:
        @test_app.get("/api/v1/broken")
        async def _broken(tenant: TenantDep) -> Response:
            return Response(content=b'{"outfitterId": 101, ', media_type="application/json")

        with capture_logs() as logs:
            response = await client.get("/api/v1/broken", headers=auth_headers["admin_102"])

        assert response.status_code == 200
        assert response.json() is None
        events = [e.get("security_event") for e in logs if e["event"] == "security_audit"]
        assert events == ["GUARD_FAILURE"]

    async def test_non_json_passes_through(
        self, test_app: FastAPI, client: AsyncClient, auth_headers: Headers
    ) -> None:
        @test_app.get("/api/v1/plain")
        async def _plain(tenant: TenantDep) -> Response:
            return Response(content="outfitterId=101", media_type="text/plain")

        response = await client.get("/api/v1/plain", headers=auth_headers["admin_102"])
        assert response.text == "outfitterId=101"


class TestSecurityHeadersMiddleware:
    async def test_tenant_scoped_response(
        self, client: AsyncClient, auth_headers: Headers
    ) -> None:
        response = await client.get("/api/v1/customers", headers=auth_headers["guide_102"])

        assert response.headers["x-tenant-isolated"] == "outfitter-102"
        assert response.headers["cache-control"] == "no-store, no-cache, must-revalidate, private"
        assert response.headers["pragma"] == "no-cache"
        assert response.headers["x-content-type-options"] == "nosniff"
        assert response.headers["x-frame-options"] == "DENY"

    async def test_rejected_request_still_gets_hardening_headers(
        self, client: AsyncClient
    ) -> None:
        response = await client.get("/api/v1/customers")
        assert response.status_code == 401
        assert response.headers["cache-control"].startswith("no-store")
        assert "x-tenant-isolated" not in response.headers


class TestRequestLoggingMiddleware:
    async def test_logs_request_with_tenant(
        self, client: AsyncClient, auth_headers: Headers
    ) -> None:
        with capture_logs() as logs:
            await client.get("/api/v1/customers", headers=auth_headers["admin_101"])

        [entry] = [e for e in logs if e["event"] == "http_request"]
        assert entry["method"] == "GET"
        assert entry["path"] == "/api/v1/customers"
        assert entry["status_code"] == 200
        assert entry["outfitter_id"] == 101
        assert "latency_ms" in entry

    async def test_logs_rejected_request_without_tenant(self, client: AsyncClient) -> None:
        with capture_logs() as logs:
            await client.get("/api/v1/customers")

        [entry] = [e for e in logs if e["event"] == "http_request"]
        assert entry["status_code"] == 401
        assert entry["outfitter_id"] is None

    async def test_skips_health(self, client: AsyncClient) -> None:
        with capture_logs() as logs:
            await client.get("/health")
        assert [e for e in logs if e["event"] == "http_request"] == []


class TestCacheInvalidationMiddleware:
    async def test_matches_concrete_path_not_reported_route(
        self,
        settings: Settings,
        principal_store: PrincipalStore,
        cache: TenantAwareCache,
        auth_headers: Headers,
    ) -> None:
        """Included routers may report their route without the API prefix."""
        app = create_app(
            settings,
            principal_store=principal_store,
            cache=cache,
            invalidation_table={
                ("POST", "/api/v1/imports/{batch_id}"): InvalidationRule(
                    patterns=(CacheKeys.EXPERIENCES,)
                )
            },
        )
        imports = APIRouter()

        @imports.post("/imports/{batch_id}")
        async def _run_import(batch_id: int, request: Request, tenant: TenantDep) -> int:
            request.scope["route"] = SimpleNamespace(path="/imports/{batch_id}")
            return batch_id

        app.include_router(imports, prefix="/api/v1")
        cache.set(CacheKeys.EXPERIENCES, ["stale"], 102)
        cache.set(CacheKeys.EXPERIENCES, ["other"], 101)

        async with AsyncClient(
            transport=ASGITransport(app=app), base_url="http://test"
        ) as ac:
            with capture_logs() as logs:
                response = await ac.post(
                    "/api/v1/imports/7", headers=auth_headers["admin_102"]
                )

        assert response.status_code == 200
        assert cache.get(CacheKeys.EXPERIENCES, 102) is None
        assert cache.get(CacheKeys.EXPERIENCES, 101) == ["other"]
        assert not [e for e in logs if e["event"] == "cache_invalidation_mapping_missing"]

    async def test_unmapped_mutation_warns_with_route_label(
        self, test_app: FastAPI, client: AsyncClient, auth_headers: Headers
    ) -> None:
        @test_app.post("/api/v1/widgets/{widget_id}")
        async def _widget(widget_id: int, tenant: TenantDep) -> int:
            return widget_id

        with capture_logs() as logs:
            for widget_id in (1, 2):
                await client.post(
                    f"/api/v1/widgets/{widget_id}", headers=auth_headers["admin_102"]
                )

        warnings = [e for e in logs if e["event"] == "cache_invalidation_mapping_missing"]
        assert [(w["method"], w["route"]) for w in warnings] == [
            ("POST", "/api/v1/widgets/{widget_id}")
        ]
