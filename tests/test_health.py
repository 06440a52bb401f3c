"""Tests for health endpoints"""
from fastapi.testclient import TestClient


def test_health(client: TestClient):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["service"] == "oeapp-approvals"


def test_ready(client: TestClient):
    response = client.get("/health/ready")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ready"
    assert data["checks"]["database"] is True
    assert data["checks"]["notification_worker"] is True


def test_live_and_root(client: TestClient):
    assert client.get("/health/live").json()["status"] == "alive"
    assert client.get("/").json()["status"] == "operational"


def test_stats_counts_requests(client: TestClient, auth, sample_request_data: dict):
    client.post("/requests", json=sample_request_data, headers=auth("requester"))

    data = client.get("/health/stats").json()
    assert data["requests"] == {"total": 1, "pending": 1}
