from dataclasses import replace

from fastapi.testclient import TestClient

from insight.config import CompletionConfig
from portal.app import create_app


def test_health(client):
    resp = client.get("/api/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "healthy"
    assert data["component"] == "portal"
    assert data["uptime_seconds"] >= 0


def test_ready_with_database_and_keys(client):
    resp = client.get("/api/ready")
    assert resp.status_code == 200
    data = resp.json()
    assert data["ready"] is True
    assert data["checks"]["database"]["exists"] is True
    assert data["checks"]["completion"]["status"] == "ok"


def test_ready_without_completion_key(portal_settings):
    settings = replace(portal_settings, completion=CompletionConfig(api_key=None))
    resp = TestClient(create_app(settings)).get("/api/ready")
    assert resp.status_code == 503
    assert resp.json()["ready"] is False
    assert resp.json()["checks"]["completion"]["status"] == "error"


def test_metrics(client):
    data = client.get("/api/metrics").json()
    assert data["app_name"] == "aegis-insight-portal"
    assert data["component"] == "portal"
    assert data["reports_total"] == 0
    assert data["reports_by_status"] == {"gathering": 0, "analyzing": 0, "complete": 0, "error": 0}


def test_metrics_counts_reports_by_status(client, upstream, org_headers):
    client.post("/api/scans", json={"subjectName": "Acme Chat"}, headers=org_headers)
    upstream.completion_content = "not json"
    client.post("/api/scans", json={"subjectName": "Globex Assist"}, headers=org_headers)

    data = client.get("/api/metrics").json()

    assert data["reports_total"] == 2
    assert data["reports_by_status"]["complete"] == 1
    assert data["reports_by_status"]["error"] == 1
