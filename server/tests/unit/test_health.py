"""Unit tests for health endpoints."""

import pytest


@pytest.mark.asyncio
async def test_health_ping_rpc(test_client):
    """Test the RPC-style health ping endpoint."""
    response = await test_client.post("/v1/health/ping", json={})
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert "timestamp" in data
    assert data["version"] == "1.0.0"


@pytest.mark.asyncio
async def test_metrics_exposes_business_counters(test_client):
    response = await test_client.get("/metrics")

    assert response.status_code == 200
    body = response.text
    for name in (
        "waitlist_promotions",
        "carpool_bookings",
        "notifications_failed",
    ):
        assert name in body
