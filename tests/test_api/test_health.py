"""Tests for health endpoints."""


class TestHealthEndpoints:
    async def test_health_check(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["service"] == "scribe-os"
        assert body["database"] == "ok"

    async def test_liveness_check(self, client):
        response = await client.get("/health/live")

        assert response.status_code == 200
        assert response.json()["status"] == "alive"

    async def test_request_headers(self, client):
        response = await client.get("/health/live")
        assert "X-Process-Time" in response.headers
        assert "X-Request-Id" in response.headers
