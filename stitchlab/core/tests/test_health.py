"""Tests for the liveness and readiness probes."""

import pytest


@pytest.mark.asyncio
async def test_health_check_returns_ok(client):
    """Liveness answers without touching the database."""
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_health_check_echoes_request_id(client):
    """Probe responses carry the correlation id like any other response."""
    response = await client.get("/health", headers={"X-Request-ID": "health-check-1"})

    assert response.headers["X-Request-ID"] == "health-check-1"


@pytest.mark.integration
@pytest.mark.asyncio
async def test_readiness_check_reports_database(db_client):
    """Readiness reports a connected database and its dialect."""
    response = await db_client.get("/health/ready")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert data["database"] == "connected"
    assert data["dialect"] in {"sqlite", "postgresql"}
