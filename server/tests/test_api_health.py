"""API health, info and metrics tests."""

import pytest


@pytest.mark.asyncio
async def test_api_health_endpoints(test_client):
    """Test the health endpoints."""
    response = await test_client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"

    response = await test_client.get("/ready")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ready"
    assert data["database"] == "ok"

    response = await test_client.get("/info")
    assert response.status_code == 200
    data = response.json()
    assert data["name"] == "toursync-api"
    assert "version" in data


@pytest.mark.asyncio
async def test_metrics_endpoint(test_client):
    """Test the metrics endpoint."""
    response = await test_client.get("/metrics")
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")


@pytest.mark.asyncio
async def test_unknown_route_is_404(test_client):
    response = await test_client.get("/api/does-not-exist")
    assert response.status_code == 404
