"""Tests for health endpoints."""

from unittest.mock import MagicMock, patch

from logiflex_api import __version__


def test_health_check(client):
    """Test health endpoint."""
    response = client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["service"] == "logiflex-api"
    assert data["version"] == __version__


def test_readiness_check(client, session_factory):
    """Readiness only needs the database with the default notification backend."""
    with patch("logiflex_api.db.session.SessionLocal", session_factory):
        response = client.get("/ready")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ready"
    assert data["checks"] == {"database": True, "redis": None}


def test_readiness_reports_database_failure(client):
    broken = MagicMock()
    broken.return_value.execute.side_effect = RuntimeError("connection refused")
    with patch("logiflex_api.db.session.SessionLocal", broken):
        response = client.get("/ready")
    assert response.status_code == 503
    assert response.json()["checks"]["database"] is False


def test_root(client):
    """Test root endpoint."""
    response = client.get("/")
    assert response.status_code == 200
    data = response.json()
    assert data["service"] == "LogiFlex API"


def test_correlation_id_is_echoed(client):
    response = client.get("/health", headers={"x-correlation-id": "req-123"})
    assert response.headers["x-correlation-id"] == "req-123"


def test_metrics_endpoint(client):
    response = client.get("/metrics/")
    assert response.status_code == 200
