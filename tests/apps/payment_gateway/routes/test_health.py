"""Tests for /health and request-level plumbing (trace header, error shape)."""

from __future__ import annotations

from fastapi.testclient import TestClient

from apps.payment_gateway.app_context import AppContext
from libs.common.logging.context import TRACE_ID_HEADER


class TestHealth:
    def test_healthy_without_pool(self, client: TestClient) -> None:
        response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["service"] == "payment_gateway"
        assert body["database_connected"] is None
        assert body["timestamp"].endswith("Z")

    def test_trace_id_echoed(self, client: TestClient) -> None:
        response = client.get("/health", headers={TRACE_ID_HEADER: "probe-1"})
        assert response.headers[TRACE_ID_HEADER] == "probe-1"


class TestErrorShape:
    def test_unknown_route_is_plain_404(self, client: TestClient) -> None:
        assert client.get("/api/v1/nope").status_code == 404

    def test_unauthenticated_has_bearer_challenge(self, client: TestClient) -> None:
        response = client.get("/api/v1/orders", headers={TRACE_ID_HEADER: "t-401"})

        assert response.status_code == 401
        assert response.headers["WWW-Authenticate"] == "Bearer"
        assert response.headers[TRACE_ID_HEADER] == "t-401"
        body = response.json()
        assert body["error"] == "unauthenticated"
        assert "timestamp" in body

    def test_request_validation_error(self, client: TestClient) -> None:
        response = client.post("/api/v1/auth/login", json={"username": "root"})

        assert response.status_code == 422
        body = response.json()
        assert body["error"] == "validation_error"
        assert body["details"]["errors"][0]["loc"] == ["body", "password"]

    def test_context_is_injected(self, client: TestClient, app_context: AppContext) -> None:
        assert client.app.state.context is app_context
