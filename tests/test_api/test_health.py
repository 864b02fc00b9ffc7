"""Tests for GET /api/health endpoint."""


def test_health_returns_ok(client):
    resp = client.get("/api/health")
    assert resp.status_code == 200
    data = resp.get_json()
    assert data["success"] is True
    assert data["data"]["status"] == "ok"
    assert data["data"]["version"] == "4.0.0"
    assert data["data"]["geminiConfigured"] is True

