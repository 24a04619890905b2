"""
tests/test_health.py -- Integration tests for GET /healthz.

Covers:
  - 200 response with status, version, and store fields
  - store reports 'error' when the backend does not answer
  - No authentication required
"""

from __future__ import annotations

from api.main import __version__


def test_health_returns_200(api_client):
    """Health endpoint returns 200 with status, version, and store."""
    client, _ = api_client
    resp = client.get("/healthz")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "ok"
    assert data["version"] == __version__
    assert data["store"] == "ok"


def test_health_reports_unreachable_store(api_client, monkeypatch):
    """A failed store ping degrades the store field but not the status code."""
    client, svc = api_client
    monkeypatch.setattr(svc.store, "ping", lambda: False)
    resp = client.get("/healthz")
    assert resp.status_code == 200
    assert resp.json()["store"] == "error"


def test_health_no_auth_required(api_client):
    """Health endpoint is accessible without any authentication headers."""
    client, _ = api_client
    resp = client.get("/healthz", headers={})
    assert resp.status_code == 200
