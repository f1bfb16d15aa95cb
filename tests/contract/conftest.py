"""
Contract test fixtures.

Contract tests drive the real app end to end over httpx ASGITransport,
backed by the same throwaway database as the unit tests.
"""
import pytest


@pytest.fixture
async def openapi_spec(async_client):
    """Fetch the OpenAPI schema from the running app (no auth required)."""
    response = await async_client.get("/openapi.json")
    assert response.status_code == 200
    return response.json()
