"""
Tests for the application shell: health, metrics, request correlation and
the cache key contract.
"""

import pytest
from httpx import AsyncClient

from app.services.cache_service import get_cached_events, make_event_list_key


@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    response = await client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["cache"] == {"status": "disabled"}


@pytest.mark.asyncio
async def test_request_id_is_echoed(client: AsyncClient):
    response = await client.get("/", headers={"X-Request-ID": "abc123"})
    assert response.headers["X-Request-ID"] == "abc123"
    assert response.headers["X-Response-Time"].endswith("ms")


@pytest.mark.asyncio
async def test_request_id_is_generated(client: AsyncClient):
    response = await client.get("/")
    assert len(response.headers["X-Request-ID"]) == 8


@pytest.mark.asyncio
async def test_metrics_count_booking_outcomes(client: AsyncClient, auth_headers, sold_out_event):
    await client.post("/api/v1/bookings/", json={"eventId": str(sold_out_event.id)}, headers=auth_headers)

    response = await client.get("/metrics")
    assert response.status_code == 200
    assert 'booking_attempts_total{outcome="no_tickets"}' in response.text
    assert "booking_latency_seconds_bucket" in response.text


@pytest.mark.asyncio
async def test_event_list_cache_key_normalises_search():
    assert make_event_list_key(1, 10, "  Jazz ", "date", "asc") == make_event_list_key(1, 10, "jazz", "date", "asc")
    assert make_event_list_key(1, 10, None, "date", "asc") != make_event_list_key(2, 10, None, "date", "asc")
    assert make_event_list_key(1, 10, None, "price", "desc").startswith("events:list:")


@pytest.mark.asyncio
async def test_cache_disabled_reads_database():
    assert await get_cached_events(make_event_list_key(1, 10, None, "date", "asc")) is None
