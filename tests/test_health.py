"""Smoke tests for the health endpoints."""
from __future__ import annotations

from fitcoach import create_app
from fitcoach.config import TestingConfig


def test_health_endpoint() -> None:
    app = create_app(TestingConfig)
    client = app.test_client()

    response = client.get("/health")

    assert response.status_code == 200
    assert response.json == {"status": "ok"}


def test_db_health_endpoint(client) -> None:
    response = client.get("/db-health")

    assert response.status_code == 200
    assert response.json == {"database": "ok"}


def test_create_app_accepts_mapping() -> None:
    app = create_app({"TESTING": True, "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:"})

    assert app.config["TESTING"] is True
    assert app.config["NOTIFICATIONS_PAGE_LIMIT"] == 50
