"""Tests for experience endpoints: tenant scoping, caching, invalidation."""

import pytest
from httpx import AsyncClient
from structlog.testing import capture_logs

from outfitter_tenancy.cache.keys import CacheKeys
from outfitter_tenancy.cache.tenant_cache import TenantAwareCache
from outfitter_tenancy.storage.memory import ExperienceRepository, OutfitterStore

Headers = dict[str, dict[str, str]]


@pytest.fixture()
async def seeded(store: OutfitterStore) -> dict[str, int]:
    """One experience per outfitter; returns their ids."""
    moose = await ExperienceRepository(store, 101).create(name="Moose hunt", capacity=4)
    fly = await ExperienceRepository(store, 102).create(
        name="Fly fishing", capacity=2, location_id=7
    )
    return {"101": moose.id, "102": fly.id}


class TestListExperiences:
    async def test_lists_only_own_records(
        self, client: AsyncClient, auth_headers: Headers, seeded: dict[str, int]
    ) -> None:
        response = await client.get("/api/v1/experiences", headers=auth_headers["admin_102"])
        assert response.status_code == 200
        body = response.json()
        assert [e["id"] for e in body] == [seeded["102"]]
        assert body[0]["outfitterId"] == 102

    async def test_outfitter_query_param_is_ignored(
        self, client: AsyncClient, auth_headers: Headers, seeded: dict[str, int]
    ) -> None:
        """Outfitter 102 asking for ?outfitterId=101 still only sees 102."""
        with capture_logs() as logs:
            response = await client.get(
                "/api/v1/experiences",
                params={"outfitterId": 101},
                headers=auth_headers["admin_102"],
            )
        assert response.status_code == 200
        assert {e["outfitterId"] for e in response.json()} == {102}

        stripped = [e for e in logs if e["event"] == "tenant_query_param_stripped"]
        assert stripped[0]["param"] == "outfitterId"
        assert stripped[0]["requested"] == "101"

    async def test_location_filter(
        self, client: AsyncClient, auth_headers: Headers, seeded: dict[str, int]
    ) -> None:
        hit = await client.get(
            "/api/v1/experiences",
            params={"locationId": 7},
            headers=auth_headers["admin_102"],
        )
        miss = await client.get(
            "/api/v1/experiences",
            params={"locationId": 8},
            headers=auth_headers["admin_102"],
        )
        assert len(hit.json()) == 1
        assert miss.json() == []

    async def test_results_are_cached_per_tenant(
        self,
        client: AsyncClient,
        auth_headers: Headers,
        cache: TenantAwareCache,
        seeded: dict[str, int],
    ) -> None:
        await client.get("/api/v1/experiences", headers=auth_headers["admin_101"])
        await client.get("/api/v1/experiences", headers=auth_headers["admin_102"])

        assert cache.get_stats(101).tenant_entries == 1
        assert cache.get_stats(102).tenant_entries == 1
        cached = cache.get(CacheKeys.EXPERIENCES, 101, params={"outfitter_id": 101})
        assert [e.id for e in cached] == [seeded["101"]]

    async def test_stripped_override_shares_plain_cache_entry(
        self,
        client: AsyncClient,
        auth_headers: Headers,
        cache: TenantAwareCache,
        seeded: dict[str, int],
    ) -> None:
        """Cache entries are keyed by the sanitized query, not the raw one."""
        headers = auth_headers["admin_102"]
        await client.get("/api/v1/experiences", headers=headers)
        with capture_logs():
            await client.get(
                "/api/v1/experiences", params={"outfitterId": 101}, headers=headers
            )

        assert cache.get_stats(102).tenant_entries == 1
        assert cache.get_stats(101).tenant_entries == 0


class TestSingleExperience:
    async def test_other_tenants_record_is_not_found(
        self, client: AsyncClient, auth_headers: Headers, seeded: dict[str, int]
    ) -> None:
        response = await client.get(
            f"/api/v1/experiences/{seeded['101']}", headers=auth_headers["admin_102"]
        )
        assert response.status_code == 404

    async def test_own_record(
        self, client: AsyncClient, auth_headers: Headers, seeded: dict[str, int]
    ) -> None:
        response = await client.get(
            f"/api/v1/experiences/{seeded['102']}", headers=auth_headers["guide_102"]
        )
        assert response.status_code == 200
        assert response.json()["name"] == "Fly fishing"


class TestMutations:
    async def test_create_invalidates_cached_list(
        self,
        client: AsyncClient,
        auth_headers: Headers,
        cache: TenantAwareCache,
        seeded: dict[str, int],
    ) -> None:
        headers = auth_headers["admin_102"]
        first = await client.get("/api/v1/experiences", headers=headers)
        assert len(first.json()) == 1
        await client.get("/api/v1/experiences", headers=auth_headers["admin_101"])

        created = await client.post(
            "/api/v1/experiences",
            json={"name": "Canoe trip", "capacity": 6, "locationId": 3},
            headers=headers,
        )
        assert created.status_code == 201
        assert created.json()["locationId"] == 3

        # Invalidation ran after the response; the other tenant kept its entry
        assert cache.get_stats(102).tenant_entries == 0
        assert cache.get_stats(101).tenant_entries == 1

        second = await client.get("/api/v1/experiences", headers=headers)
        assert {e["name"] for e in second.json()} == {"Fly fishing", "Canoe trip"}

    async def test_body_outfitter_id_is_ignored(
        self, client: AsyncClient, auth_headers: Headers, store: OutfitterStore
    ) -> None:
        response = await client.post(
            "/api/v1/experiences",
            json={"name": "Sneaky", "outfitterId": 101},
            headers=auth_headers["admin_102"],
        )
        assert response.status_code == 201
        assert response.json()["outfitterId"] == 102
        assert await ExperienceRepository(store, 101).list() == []

    async def test_update_partial(
        self, client: AsyncClient, auth_headers: Headers, seeded: dict[str, int]
    ) -> None:
        response = await client.put(
            f"/api/v1/experiences/{seeded['102']}",
            json={"capacity": 3},
            headers=auth_headers["admin_102"],
        )
        assert response.status_code == 200
        assert response.json()["capacity"] == 3
        assert response.json()["name"] == "Fly fishing"

    async def test_cannot_update_other_tenants_record(
        self, client: AsyncClient, auth_headers: Headers, seeded: dict[str, int]
    ) -> None:
        response = await client.put(
            f"/api/v1/experiences/{seeded['101']}",
            json={"name": "Mine now"},
            headers=auth_headers["admin_102"],
        )
        assert response.status_code == 404

    async def test_delete(
        self,
        client: AsyncClient,
        auth_headers: Headers,
        store: OutfitterStore,
        seeded: dict[str, int],
    ) -> None:
        response = await client.delete(
            f"/api/v1/experiences/{seeded['102']}", headers=auth_headers["admin_102"]
        )
        assert response.status_code == 204
        assert await ExperienceRepository(store, 102).list() == []

    async def test_failed_mutation_keeps_cache(
        self,
        client: AsyncClient,
        auth_headers: Headers,
        cache: TenantAwareCache,
        seeded: dict[str, int],
    ) -> None:
        headers = auth_headers["admin_102"]
        await client.get("/api/v1/experiences", headers=headers)

        response = await client.delete("/api/v1/experiences/99999", headers=headers)

        assert response.status_code == 404
        assert cache.get_stats(102).tenant_entries == 1
