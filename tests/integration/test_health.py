"""Integration tests for health check endpoints."""

from unittest.mock import AsyncMock

from fastapi.testclient import TestClient


class TestHealthEndpoint:
    """Tests for the /health liveness endpoint."""

    def test_health_returns_200(self, client: TestClient) -> None:
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert "timestamp" in data
        assert data["version"] == "0.1.0"


class TestReadinessEndpoint:
    """Tests for the /health/ready readiness endpoint."""

    def test_ready_with_memory_stores(self, client: TestClient) -> None:
        response = client.get("/health/ready")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["backend"] == "memory"
        assert {check["name"] for check in data["checks"]} == {"orders", "events", "effects"}

    def test_unreachable_store_is_503(self, client: TestClient) -> None:
        client.app.state.stores.events.ping = AsyncMock(side_effect=ConnectionError("store unreachable"))

        response = client.get("/health/ready")

        assert response.status_code == 503
        data = response.json()
        assert data["status"] == "unhealthy"
        failed = [check for check in data["checks"] if not check["healthy"]]
        assert failed[0]["name"] == "events"
        assert failed[0]["error"] == "store unreachable"


class TestRequestSizeLimit:
    """Oversized bodies are refused."""

    def test_oversized_callback_is_413(self, client: TestClient) -> None:
        response = client.post(
            "/api/v1/webhooks/payapp",
            content="a=" + "x" * (70 * 1024),
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )

        assert response.status_code == 413
        assert response.json()["error"] == "request_too_large"
