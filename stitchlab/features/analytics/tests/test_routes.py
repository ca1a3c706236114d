"""Integration tests for analytics routes."""

import csv
import io

import pytest

from stitchlab.core.config import get_settings

WEEK = {"start_date": "2024-01-01", "end_date": "2024-01-07"}


def admin_headers(tenant_id: int) -> dict[str, str]:
    return {"X-User-Role": "admin", "X-Tenant-Id": str(tenant_id)}


@pytest.mark.integration
@pytest.mark.asyncio
class TestKPIRoute:
    """Tests for GET /analytics/kpis."""

    async def test_kpis(self, db_client, daily_rollups):
        """KPI cards come back with their comparison range."""
        response = await db_client.get(
            "/analytics/kpis", params=WEEK, headers=admin_headers(daily_rollups.tenant_id)
        )

        assert response.status_code == 200
        data = response.json()
        assert len(data["cards"]) == 14
        assert data["previous_range"] == {"start_date": "2023-12-25", "end_date": "2023-12-31"}
        cards = {card["id"]: card for card in data["cards"]}
        assert cards["cutting-received"]["value"] == 500
        assert cards["pending-from-tailors"]["lower_is_better"] is True

    async def test_inverted_range_is_bad_request(self, db_client, daily_rollups):
        """end_date before start_date is a 400 problem response."""
        response = await db_client.get(
            "/analytics/kpis",
            params={"start_date": "2024-01-07", "end_date": "2024-01-01"},
            headers=admin_headers(daily_rollups.tenant_id),
        )

        assert response.status_code == 400
        assert response.json()["code"] == "BAD_REQUEST"

    async def test_unknown_preset_is_validation_error(self, db_client, daily_rollups):
        """Presets are validated."""
        response = await db_client.get(
            "/analytics/kpis",
            params={"preset": "fortnight"},
            headers=admin_headers(daily_rollups.tenant_id),
        )

        assert response.status_code == 422

    async def test_vendor_without_vendor_id_is_forbidden(self, db_client, daily_rollups):
        """A vendor identity without X-Vendor-Id cannot be scoped."""
        response = await db_client.get(
            "/analytics/kpis",
            params=WEEK,
            headers={"X-User-Role": "vendor", "X-Tenant-Id": str(daily_rollups.tenant_id)},
        )

        assert response.status_code == 403
        assert response.json()["code"] == "SCOPE_REJECTED"

    async def test_vendor_scope(self, db_client, daily_rollups):
        """Vendor headers scope the cards to the vendor's styles."""
        response = await db_client.get(
            "/analytics/kpis",
            params=WEEK,
            headers={
                "X-User-Role": "vendor",
                "X-Tenant-Id": str(daily_rollups.tenant_id),
                "X-Vendor-Id": str(daily_rollups.vendor_a),
            },
        )

        assert response.status_code == 200
        cards = {card["id"]: card for card in response.json()["cards"]}
        assert cards["pcs-shipped"]["value"] == 50


@pytest.mark.integration
@pytest.mark.asyncio
class TestTrendRoute:
    """Tests for GET /analytics/trends."""

    async def test_trend(self, db_client, daily_rollups):
        """A daily series with one point per day."""
        response = await db_client.get(
            "/analytics/trends",
            params={"metric": "shippedPcs", **WEEK},
            headers=admin_headers(daily_rollups.tenant_id),
        )

        assert response.status_code == 200
        data = response.json()
        assert data["metric"] == "pcs_shipped"
        assert data["granularity"] == "daily"
        assert len(data["points"]) == 7
        assert sum(point["value"] for point in data["points"]) == 70

    async def test_trend_with_repeated_style_filter(self, db_client, daily_rollups):
        """Repeated style_id params narrow the series."""
        response = await db_client.get(
            "/analytics/trends",
            params=[
                ("metric", "pcs_shipped"),
                ("start_date", "2024-01-01"),
                ("end_date", "2024-01-07"),
                ("style_id", str(daily_rollups.style_b)),
            ],
            headers=admin_headers(daily_rollups.tenant_id),
        )

        assert response.status_code == 200
        assert sum(point["value"] for point in response.json()["points"]) == 20

    async def test_unknown_metric_is_empty(self, db_client, daily_rollups):
        """Unknown metrics are not an error."""
        response = await db_client.get(
            "/analytics/trends",
            params={"metric": "nope", **WEEK},
            headers=admin_headers(daily_rollups.tenant_id),
        )

        assert response.status_code == 200
        assert response.json()["points"] == []


@pytest.mark.integration
@pytest.mark.asyncio
class TestBreakdownRoute:
    """Tests for GET /analytics/breakdown."""

    async def test_breakdown_by_vendor(self, db_client, daily_rollups):
        """Vendor breakdown with labels and percentages."""
        response = await db_client.get(
            "/analytics/breakdown",
            params={"metric": "pcs_shipped", "group_by": "vendor", **WEEK},
            headers=admin_headers(daily_rollups.tenant_id),
        )

        assert response.status_code == 200
        data = response.json()
        assert data["group_by"] == "vendor"
        assert [item["label"] for item in data["items"]] == ["Alpha Brands", "Beta Retail"]

    async def test_breakdown_by_size_is_empty(self, db_client, daily_rollups):
        """Size is accepted but untracked."""
        response = await db_client.get(
            "/analytics/breakdown",
            params={"metric": "pcs_shipped", "group_by": "size", **WEEK},
            headers=admin_headers(daily_rollups.tenant_id),
        )

        assert response.status_code == 200
        assert response.json()["items"] == []

    async def test_breakdown_rejects_zero_limit(self, db_client, daily_rollups):
        """limit must be positive."""
        response = await db_client.get(
            "/analytics/breakdown",
            params={"metric": "pcs_shipped", "limit": 0, **WEEK},
            headers=admin_headers(daily_rollups.tenant_id),
        )

        assert response.status_code == 422


@pytest.mark.integration
@pytest.mark.asyncio
class TestDrilldownRoute:
    """Tests for GET /analytics/drilldown."""

    async def test_drilldown_pagination(self, db_client, daily_rollups):
        """Pagination metadata reports further pages."""
        response = await db_client.get(
            "/analytics/drilldown",
            params={"limit": 5, **WEEK},
            headers=admin_headers(daily_rollups.tenant_id),
        )

        assert response.status_code == 200
        data = response.json()
        assert len(data["data"]) == 5
        assert data["pagination"] == {"total": 14, "limit": 5, "skip": 0, "has_more": True}

    async def test_drilldown_for_tailor(self, db_client, daily_rollups):
        """Tailor callers see their own rows."""
        response = await db_client.get(
            "/analytics/drilldown",
            params=WEEK,
            headers={
                "X-User-Role": "tailor",
                "X-Tenant-Id": str(daily_rollups.tenant_id),
                "X-Tailor-Id": str(daily_rollups.tailor_a),
            },
        )

        assert response.status_code == 200
        rows = response.json()["data"]
        assert len(rows) == 7
        assert {row["tailor_id"] for row in rows} == {daily_rollups.tailor_a}


def read_csv(text: str) -> list[dict[str, str]]:
    return list(csv.DictReader(io.StringIO(text)))


def vendor_a_headers(data) -> dict[str, str]:
    return {
        "X-User-Role": "vendor",
        "X-Tenant-Id": str(data.tenant_id),
        "X-Vendor-Id": str(data.vendor_a),
    }


@pytest.mark.integration
@pytest.mark.asyncio
class TestExportRoute:
    """Tests for GET /analytics/export."""

    async def test_kpis_csv(self, db_client, daily_rollups):
        """KPI cards export as CSV, one row per card."""
        response = await db_client.get(
            "/analytics/export",
            params={"view": "kpis", "format": "csv", **WEEK},
            headers=admin_headers(daily_rollups.tenant_id),
        )

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert response.headers["content-disposition"] == (
            'attachment; filename="analytics-kpis-2024-01-01-2024-01-07.csv"'
        )
        assert response.text.splitlines()[0] == (
            "id,label,value,unit,previous_value,trend_percent,trend_direction,"
            "lower_is_better,tooltip"
        )
        rows = {row["id"]: row for row in read_csv(response.text)}
        assert len(rows) == 14
        assert float(rows["cutting-received"]["value"]) == 500
        assert rows["pending-from-tailors"]["lower_is_better"] == "True"

    async def test_trend_json(self, db_client, daily_rollups):
        """JSON exports carry the same records as the trend points."""
        response = await db_client.get(
            "/analytics/export",
            params={"view": "trends", "format": "json", "metric": "shippedPcs", **WEEK},
            headers=admin_headers(daily_rollups.tenant_id),
        )

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("application/json")
        assert response.headers["content-disposition"].endswith('.json"')
        records = response.json()
        assert [record["date"] for record in records][0] == "2024-01-01"
        assert len(records) == 7
        assert sum(record["value"] for record in records) == 70

    async def test_breakdown_csv(self, db_client, daily_rollups):
        """Breakdown items export in ranked order."""
        response = await db_client.get(
            "/analytics/export",
            params={"view": "breakdown", "metric": "pcs_shipped", "group_by": "vendor", **WEEK},
            headers=admin_headers(daily_rollups.tenant_id),
        )

        assert response.status_code == 200
        rows = read_csv(response.text)
        assert [row["label"] for row in rows] == ["Alpha Brands", "Beta Retail"]
        assert [float(row["value"]) for row in rows] == [50, 20]

    async def test_drilldown_exports_every_page(self, db_client, daily_rollups, monkeypatch):
        """Drilldown exports are not cut at one page."""
        monkeypatch.setattr(get_settings(), "analytics_drilldown_max_limit", 5)

        response = await db_client.get(
            "/analytics/export",
            params={"view": "drilldown", **WEEK},
            headers=admin_headers(daily_rollups.tenant_id),
        )

        assert response.status_code == 200
        rows = read_csv(response.text)
        assert len(rows) == 14
        assert {row["style_code"] for row in rows} == {"ST-100", "ST-200"}

    async def test_vendor_export_stays_in_scope(self, db_client, daily_rollups):
        """A vendor export holds only the vendor's own styles, even when filtering for others."""
        response = await db_client.get(
            "/analytics/export",
            params=[
                ("view", "drilldown"),
                ("start_date", "2024-01-01"),
                ("end_date", "2024-01-07"),
                ("vendor_id", str(daily_rollups.vendor_b)),
            ],
            headers=vendor_a_headers(daily_rollups),
        )

        assert response.status_code == 200
        rows = read_csv(response.text)
        assert len(rows) == 7
        assert {row["style_id"] for row in rows} == {str(daily_rollups.style_a)}
        assert "Beta Retail" not in response.text
        assert "ST-200" not in response.text

    async def test_vendor_breakdown_export(self, db_client, daily_rollups):
        """Vendor breakdowns only list the caller's vendor."""
        response = await db_client.get(
            "/analytics/export",
            params={"view": "breakdown", "metric": "pcs_shipped", "group_by": "vendor", **WEEK},
            headers=vendor_a_headers(daily_rollups),
        )

        assert response.status_code == 200
        rows = read_csv(response.text)
        assert [row["label"] for row in rows] == ["Alpha Brands"]

    async def test_trend_without_metric_is_bad_request(self, db_client, daily_rollups):
        """Metric-based views need a metric."""
        response = await db_client.get(
            "/analytics/export",
            params={"view": "trends", **WEEK},
            headers=admin_headers(daily_rollups.tenant_id),
        )

        assert response.status_code == 400
        assert response.json()["details"] == {"view": "trends"}

    async def test_unknown_view_and_format(self, db_client, daily_rollups):
        """View and format are validated."""
        for params in ({"view": "table"}, {"view": "kpis", "format": "xlsx"}):
            response = await db_client.get(
                "/analytics/export",
                params={**params, **WEEK},
                headers=admin_headers(daily_rollups.tenant_id),
            )
            assert response.status_code == 422

    async def test_empty_export_keeps_header(self, db_client, daily_rollups):
        """An unknown metric exports just the header."""
        response = await db_client.get(
            "/analytics/export",
            params={"view": "trends", "metric": "nope", **WEEK},
            headers=admin_headers(daily_rollups.tenant_id),
        )

        assert response.status_code == 200
        assert response.text == "date,value,label\n"
