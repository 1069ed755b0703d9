"""Tests for the liveness endpoint."""
from datetime import datetime

from fastapi.testclient import TestClient

from portal.apps.monitoring import api

client = TestClient(api.app)


def test_health_reports_healthy(settings):
    settings.ENVIRONMENT = "test"
    settings.VERSION = "9.9.9"
    resp = client.get("/api/health")
    assert resp.status_code == 200
    assert resp.headers["cache-control"] == "no-cache"
    body = resp.json()
    assert body["status"] == "healthy"
    assert body["environment"] == "test"
    assert body["version"] == "9.9.9"
    assert body["uptime"] >= 0
    assert datetime.fromisoformat(body["timestamp"].replace("Z", "+00:00")).tzinfo is not None


def test_health_failure_is_unhealthy(monkeypatch):
    def boom():
        raise RuntimeError("broken")

    monkeypatch.setattr(api, "build_health_payload", boom)
    resp = client.get("/api/health")
    assert resp.status_code == 500
    body = resp.json()
    assert body["status"] == "unhealthy"
    assert body["error"] == "Internal server error"
    assert "timestamp" in body


def test_head_health():
    resp = client.head("/api/health")
    assert resp.status_code == 200
    assert resp.content == b""


def test_request_id_is_echoed():
    resp = client.get("/api/health", headers={"X-Request-ID": "abc-123"})
    assert resp.headers["X-Request-ID"] == "abc-123"
    generated = client.get("/api/health").headers["X-Request-ID"]
    assert len(generated) == 36


def test_serve_runs_uvicorn(monkeypatch, settings):
    settings.HEALTH_HOST = "127.0.0.1"
    settings.HEALTH_PORT = 3100
    seen = {}

    def fake_run(app, **kwargs):
        seen["app"] = app
        seen.update(kwargs)

    monkeypatch.setattr(api.uvicorn, "run", fake_run)
    api.serve()
    assert seen["app"] is api.app
    assert seen["host"] == "127.0.0.1" and seen["port"] == 3100
