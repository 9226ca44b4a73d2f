"""Tests for app factory and role-based routing."""

import os
from unittest.mock import patch

from fastapi.testclient import TestClient

from atende.api.factory import create_app
from atende.observability.correlation import CORRELATION_ID_HEADER


class TestPublicRole:
    def test_health_available(self):
        response = TestClient(create_app(role="public")).get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_tasks_not_mounted(self):
        client = TestClient(create_app(role="public"))
        assert client.get("/tasks/health").status_code == 404
        assert client.post("/tasks/billing/check-payment-notifications").status_code == 404


class TestWorkerRole:
    def test_health_available(self):
        assert TestClient(create_app(role="worker")).get("/health").status_code == 200

    def test_tasks_mounted(self):
        response = TestClient(create_app(role="worker")).get("/tasks/health")
        assert response.status_code == 200
        assert response.json()["subsystem"] == "tasks"


class TestRoleFromEnv:
    def test_env_worker(self):
        with patch.dict(os.environ, {"APP_ROLE": "worker"}):
            app = create_app()
        assert TestClient(app).get("/tasks/health").status_code == 200

    def test_default_public(self):
        with patch.dict(os.environ, {}, clear=True):
            app = create_app()
        assert TestClient(app).get("/tasks/health").status_code == 404


class TestCorrelationHeader:
    def test_echoes_incoming_id(self):
        client = TestClient(create_app(role="public"))
        response = client.get("/health", headers={CORRELATION_ID_HEADER: "req-123"})
        assert response.headers[CORRELATION_ID_HEADER] == "req-123"

    def test_generates_id(self):
        response = TestClient(create_app(role="public")).get("/health")
        assert response.headers[CORRELATION_ID_HEADER]
