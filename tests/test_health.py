"""
tests/test_health.py -- Integration tests for GET /api/health.

Covers:
  - 200 response with status, version, and components fields
  - components.database reports 'ok' against the test database
  - No authentication required, and no audit entry written
"""

from __future__ import annotations

from conftest import ApiContext, drain_audit


def test_health_returns_200_with_components(api_client: ApiContext) -> None:
    """Health endpoint returns 200 with status, version, and components."""
    resp = api_client.client.get("/api/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "healthy"
    assert data["version"] == "1.0.0"
    assert data["components"]["app"] == "ok"
    assert data["components"]["database"] == "ok"


def test_health_no_auth_required(api_client: ApiContext) -> None:
    """Health endpoint is accessible without any authentication headers."""
    resp = api_client.client.get("/api/health", headers={})
    assert resp.status_code == 200


def test_health_not_audited(api_client: ApiContext) -> None:
    api_client.client.get("/api/health")
    drain_audit(api_client.client)
    rows = api_client.store.execute_query("Transactions", "READ", {"Route": "GET /api/health"})
    assert rows == []
