"""
tests/test_health.py -- Integration tests for GET /api/health.

Covers:
  - 200 response with status, version, and components fields
  - components.database reports 'ok' against the test stores
  - No authentication required
"""

from __future__ import annotations


def test_health_returns_200_with_components(api_client):
    """Health endpoint returns 200 with status, version, and components."""
    client, _, _ = api_client
    resp = client.get("/api/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "healthy"
    assert data["version"]
    assert data["components"]["app"] == "ok"
    assert data["components"]["database"] == "ok"


def test_health_no_auth_required(api_client):
    """Health endpoint is accessible without any authentication headers."""
    client, _, _ = api_client
    resp = client.get("/api/health", headers={})
    assert resp.status_code == 200


def test_unknown_route_uses_error_envelope(api_client):
    """Framework 404s come back in the same {message, code} envelope."""
    client, _, _ = api_client
    resp = client.get("/api/does-not-exist")
    assert resp.status_code == 404
    assert resp.json()["code"] == "http_404"


def test_health_degraded_when_database_fails(api_client, monkeypatch):
    """A failed database round-trip is reported as degraded with 503."""
    client, _, _ = api_client
    monkeypatch.setattr(client.app.state.user_store, "ping", lambda: False)
    resp = client.get("/api/health")
    assert resp.status_code == 503
    data = resp.json()
    assert data["status"] == "degraded"
    assert data["components"] == {"app": "ok", "database": "error"}
