"""
tests/test_health.py -- Integration tests for GET /api/v1/health.

Covers:
  - 200 response with status, version, and components fields
  - components.database reports 'ok' while the store answers, 'error' otherwise
  - No authentication and no rate limit
"""

from __future__ import annotations

from sqlalchemy.exc import OperationalError

from api.main import VERSION


def test_health_returns_200_with_components(api_client):
    """Health endpoint returns 200 with status, version, and components."""
    client, _, _ = api_client
    resp = client.get("/api/v1/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "healthy"
    assert data["version"] == VERSION
    assert data["components"] == {"app": "ok", "database": "ok"}


def test_health_no_auth_required(api_client):
    """Health endpoint is accessible without any authentication headers."""
    client, _, _ = api_client
    for _ in range(3):
        resp = client.get("/api/v1/health", headers={})
        assert resp.status_code == 200


def test_health_degraded_when_store_fails(api_client, monkeypatch):
    """A failing ping is reported, not raised."""
    client, _, _ = api_client

    def broken_ping():
        raise OperationalError("SELECT 1", {}, Exception("unreachable"))

    monkeypatch.setattr(client.app.state.store, "ping", broken_ping)
    data = client.get("/api/v1/health").json()
    assert data["status"] == "degraded"
    assert data["components"]["database"] == "error"
