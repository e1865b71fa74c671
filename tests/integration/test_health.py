"""Tests for health check endpoints."""

import pytest
from httpx import AsyncClient

from rsywx.services.cache import set_cache_backend


@pytest.mark.asyncio
async def test_liveness_probe(async_client: AsyncClient) -> None:
    """Test that liveness probe returns OK."""
    response = await async_client.get("/health/live")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_plain_health_alias(async_client: AsyncClient) -> None:
    response = await async_client.get("/health")
    assert response.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_readiness_probe(async_client: AsyncClient) -> None:
    """Test that readiness probe checks the database and the cache."""
    response = await async_client.get("/health/ready")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert data["checks"] == {"database": "ok", "cache": "ok"}


@pytest.mark.asyncio
async def test_readiness_degraded_without_cache(async_client: AsyncClient) -> None:
    """The API still answers without a cache, so readiness only degrades."""
    set_cache_backend(None)

    data = (await async_client.get("/health/ready")).json()

    assert data["status"] == "degraded"
    assert data["checks"]["cache"] == "error"


@pytest.mark.asyncio
async def test_root_endpoint(async_client: AsyncClient) -> None:
    """Test that root endpoint returns service info."""
    response = await async_client.get("/")

    assert response.status_code == 200
    data = response.json()
    assert data["service"] == "RSYWX API"
    assert data["api"] == "/api/v1"
    assert data["docs"] == "/docs"
    assert data["health"] == "/health/live"


@pytest.mark.asyncio
async def test_request_id_header(async_client: AsyncClient) -> None:
    """Test that response includes X-Request-ID header."""
    response = await async_client.get("/health/live")

    assert response.status_code == 200
    assert "X-Request-ID" in response.headers


@pytest.mark.asyncio
async def test_custom_request_id(async_client: AsyncClient) -> None:
    """Test that custom X-Request-ID is echoed back."""
    custom_id = "test-request-id-12345"
    response = await async_client.get("/health/live", headers={"X-Request-ID": custom_id})

    assert response.headers["X-Request-ID"] == custom_id
