"""
Tests for health check endpoint.

The health endpoint must return:
- HTTP 200 with {"status": "healthy"} when the database answers
- HTTP 503 with {"status": "unhealthy"} when it does not
"""
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from core.database import check_db_health


class TestHealthEndpoint:
    @pytest.mark.asyncio
    async def test_health_returns_200_when_database_connected(self, async_client):
        response = await async_client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["database"] == "connected"

    @pytest.mark.asyncio
    async def test_health_returns_503_when_database_disconnected(self, async_client):
        with patch("main.check_db_health", AsyncMock(return_value=False)):
            response = await async_client.get("/health")

        assert response.status_code == 503
        data = response.json()
        assert data["status"] == "unhealthy"
        assert data["database"] == "disconnected"

    @pytest.mark.asyncio
    async def test_health_check_reports_failure(self):
        broken_factory = MagicMock(side_effect=ConnectionError("Connection refused"))
        assert await check_db_health(broken_factory) is False

    @pytest.mark.asyncio
    async def test_root_banner(self, async_client):
        response = await async_client.get("/")
        assert response.json()["mcp_endpoint"] == "/mcp"
