"""Tests for /health endpoints."""

from collections.abc import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient

from llmrelay.client import ModelClient
from llmrelay.main import app
from llmrelay.providers import ProviderRegistry


@pytest.fixture(autouse=True)
def cleanup_client():
    yield
    if hasattr(app.state, "client"):
        del app.state.client


@pytest.fixture
async def http() -> AsyncGenerator[AsyncClient, None]:
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


# ---------------------------------------------------------------------------
# /health
# ---------------------------------------------------------------------------
class TestHealthEndpoint:
    async def test_returns_200(self, http: AsyncClient) -> None:
        response = await http.get("/health")
        assert response.status_code == 200

    async def test_response_structure(self, http: AsyncClient) -> None:
        response = await http.get("/health")
        body = response.json()
        assert body["status"] == "healthy"
        assert "timestamp" in body
        assert "version" in body

    async def test_version_matches_settings(self, http: AsyncClient) -> None:
        from llmrelay.config import settings

        response = await http.get("/health")
        assert response.json()["version"] == settings.app_version


# ---------------------------------------------------------------------------
# /health/live
# ---------------------------------------------------------------------------
class TestLivenessEndpoint:
    async def test_returns_200(self, http: AsyncClient) -> None:
        response = await http.get("/health/live")
        assert response.status_code == 200
        assert response.json()["status"] == "alive"


# ---------------------------------------------------------------------------
# /health/ready
# ---------------------------------------------------------------------------
class TestReadinessEndpoint:
    async def test_ready_when_client_bound(self, http: AsyncClient, client: ModelClient) -> None:
        app.state.client = client

        response = await http.get("/health/ready")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ready"
        assert body["checks"]["client"] == "ok"
        assert body["model"] == "gemini/gemini-2.5-flash"

    async def test_unbound_client_returns_503(
        self, http: AsyncClient, registry: ProviderRegistry
    ) -> None:
        app.state.client = ModelClient(registry)

        response = await http.get("/health/ready")

        assert response.status_code == 503
        assert response.json()["status"] == "unavailable"

    async def test_missing_client_returns_503(self, http: AsyncClient) -> None:
        response = await http.get("/health/ready")
        assert response.status_code == 503


# ---------------------------------------------------------------------------
# /metrics
# ---------------------------------------------------------------------------
class TestMetricsEndpoint:
    async def test_exposes_relay_metrics(self, http: AsyncClient) -> None:
        response = await http.get("/metrics/")
        assert response.status_code == 200
        assert "llmrelay_active_sessions" in response.text
