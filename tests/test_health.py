"""Tests for health endpoints and request correlation."""

from unittest.mock import AsyncMock, patch

import pytest


class TestHealth:
    @pytest.mark.asyncio
    async def test_healthy(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["database"] == "connected"
        assert response.json()["scheduler"] == "stopped"

    @pytest.mark.asyncio
    async def test_degraded_when_database_down(self, client):
        with patch(
            "wakecheck.routers.health.check_database_connection",
            AsyncMock(return_value=False),
        ):
            response = await client.get("/health")
            ready = await client.get("/health/ready")

        assert response.status_code == 503
        assert ready.status_code == 503

    @pytest.mark.asyncio
    async def test_liveness(self, client):
        response = await client.get("/health/live")
        assert response.json() == {"status": "alive"}


class TestCorrelationId:
    @pytest.mark.asyncio
    async def test_generated_when_missing(self, client):
        response = await client.get("/health/live")
        assert response.headers.get("x-correlation-id")

    @pytest.mark.asyncio
    async def test_echoes_incoming_id(self, client):
        response = await client.get(
            "/health/live", headers={"X-Correlation-ID": "abc-123"}
        )
        assert response.headers["x-correlation-id"] == "abc-123"
