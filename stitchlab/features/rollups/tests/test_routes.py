"""Integration tests for rollup refresh routes."""

import pytest

ADMIN = {"X-User-Role": "admin"}


@pytest.mark.integration
@pytest.mark.asyncio
class TestRefreshRoute:
    """Tests for POST /rollups/refresh."""

    async def test_refresh_returns_counts(self, db_client, production_data):
        """A privileged caller can rebuild a range."""
        response = await db_client.post(
            "/rollups/refresh",
            json={
                "tenant_id": production_data.tenant_id,
                "start_date": "2024-01-01",
                "end_date": "2024-01-07",
                "granularity": "daily",
            },
            headers=ADMIN,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["count"] == 7
        assert data["rows_written"] == 35
        assert data["granularity"] == "daily"

    async def test_refresh_inverted_range(self, db_client, production_data):
        """start_date after end_date succeeds with count 0."""
        response = await db_client.post(
            "/rollups/refresh",
            json={"start_date": "2024-01-07", "end_date": "2024-01-01"},
            headers=ADMIN,
        )

        assert response.status_code == 200
        assert response.json()["count"] == 0

    async def test_refresh_rejects_vendor_caller(self, db_client):
        """Vendor callers cannot trigger refreshes."""
        response = await db_client.post(
            "/rollups/refresh",
            json={"start_date": "2024-01-01", "end_date": "2024-01-07"},
            headers={"X-User-Role": "vendor", "X-Vendor-Id": "1"},
        )

        assert response.status_code == 403
        assert response.headers["content-type"] == "application/problem+json"
        assert response.json()["code"] == "FORBIDDEN"

    async def test_refresh_requires_role_header(self, db_client):
        """The role header is mandatory."""
        response = await db_client.post(
            "/rollups/refresh",
            json={"start_date": "2024-01-01", "end_date": "2024-01-07"},
        )

        assert response.status_code == 422

    async def test_refresh_rejects_unknown_role(self, db_client):
        """Unknown roles are a bad request."""
        response = await db_client.post(
            "/rollups/refresh",
            json={"start_date": "2024-01-01", "end_date": "2024-01-07"},
            headers={"X-User-Role": "superuser"},
        )

        assert response.status_code == 400

    async def test_refresh_rejects_oversized_range(self, db_client):
        """Too many buckets is a 400 problem response."""
        response = await db_client.post(
            "/rollups/refresh",
            json={"start_date": "2000-01-01", "end_date": "2024-01-01"},
            headers=ADMIN,
        )

        assert response.status_code == 400
        assert response.json()["status"] == 400
        details = response.json()["details"]
        assert details["max_buckets"] == 1000
        assert details["buckets"] > 1000

    async def test_refresh_rejects_bad_granularity(self, db_client):
        """Granularity is validated."""
        response = await db_client.post(
            "/rollups/refresh",
            json={"start_date": "2024-01-01", "end_date": "2024-01-07", "granularity": "hourly"},
            headers=ADMIN,
        )

        assert response.status_code == 422


@pytest.mark.integration
@pytest.mark.asyncio
class TestRefreshAllRoute:
    """Tests for POST /rollups/refresh-all."""

    async def test_refresh_all(self, db_client, production_data):
        """An unbound admin refreshes every tenant."""
        response = await db_client.post(
            "/rollups/refresh-all",
            json={"start_date": "2024-01-01", "end_date": "2024-01-07", "granularity": "weekly"},
            headers=ADMIN,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["tenants"] == 2
        assert data["rows_written"] == 7

    async def test_refresh_all_tenant_bound_manager(self, db_client, production_data):
        """A manager bound to a tenant only refreshes that tenant."""
        response = await db_client.post(
            "/rollups/refresh-all",
            json={"start_date": "2024-01-01", "end_date": "2024-01-07", "granularity": "weekly"},
            headers={"X-User-Role": "manager", "X-Tenant-Id": str(production_data.other_tenant_id)},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["tenants"] == 1
        assert data["rows_written"] == 2
