from __future__ import annotations

import logging

from fastapi.testclient import TestClient

from app.config import get_settings
from app.main import app


def test_health_reports_configuration(database: str) -> None:
    response = TestClient(app).get("/healthz")
    assert response.status_code == 200
    payload = response.json()
    assert payload["status"] == "ok"
    assert payload["database_configured"] is True


def test_database_health_endpoint_success(database: str) -> None:
    client = TestClient(app)
    response = client.get("/healthz/database")
    assert response.status_code == 200
    payload = response.json()
    assert payload["status"] == "ok"
    assert payload["pool"]["connects"] >= 1


def test_database_health_endpoint_failure(monkeypatch) -> None:
    client = TestClient(app)

    def raise_runtime_error():
        raise RuntimeError("SPEAKING_DATABASE_URL must be configured before using the database.")

    monkeypatch.setattr("app.main.get_engine", raise_runtime_error)
    response = client.get("/healthz/database")
    assert response.status_code == 503
    assert response.json()["detail"].startswith("SPEAKING_DATABASE_URL")


def test_lifespan_creates_schema_and_disposes_engine(database: str) -> None:
    with TestClient(app) as client:
        assert client.get("/healthz/database").status_code == 200
    from app.db import session as db_session

    assert db_session._engine is None


def test_default_session_secret_is_flagged_at_startup(monkeypatch, caplog) -> None:
    monkeypatch.delenv("SPEAKING_SESSION_SECRET", raising=False)
    monkeypatch.delenv("SPEAKING_DATABASE_URL", raising=False)
    get_settings.cache_clear()
    try:
        with caplog.at_level(logging.WARNING, logger="app.main"):
            with TestClient(app):
                pass
    finally:
        get_settings.cache_clear()

    assert any("SPEAKING_SESSION_SECRET" in record.getMessage() for record in caplog.records)
