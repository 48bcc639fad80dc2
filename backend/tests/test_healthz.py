from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from gameplan.config import get_settings
from gameplan.db.session import dispose_engine
from gameplan.main import app


@pytest.fixture()
def client(monkeypatch):
    monkeypatch.setenv("GAMEPLAN_DATABASE_URL", "sqlite://")
    get_settings.cache_clear()
    dispose_engine()
    try:
        yield TestClient(app)
    finally:
        dispose_engine()
        get_settings.cache_clear()


def test_database_health_endpoint_success(client: TestClient) -> None:
    response = client.get("/healthz/database")
    assert response.status_code == 200
    payload = response.json()
    assert payload["status"] == "ok"
    assert payload["pool"]["connects"] >= 1
    assert "persistence_mode" in payload


def test_database_health_endpoint_failure(client: TestClient, monkeypatch) -> None:
    def raise_runtime_error():
        raise RuntimeError("missing database url")

    monkeypatch.setattr("gameplan.main.get_engine", raise_runtime_error)
    response = client.get("/healthz/database")
    assert response.status_code == 503
    assert response.json()["detail"] == "missing database url"
