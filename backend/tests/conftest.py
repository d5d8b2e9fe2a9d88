from __future__ import annotations

from pathlib import Path
from typing import Callable, Dict, Iterator, List, Tuple

import pytest
from fastapi.testclient import TestClient

from app.auth import create_session_token, hash_password
from app.config import get_settings
from app.db.session import create_schema, dispose_engine, session_scope
from app.main import app
from app.repositories.users import user_accounts
from app.telemetry import TelemetryEvent, clear_listeners, register_listener

UserFactory = Callable[..., Tuple[str, Dict[str, str]]]


@pytest.fixture
def database(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[str]:
    url = f"sqlite:///{tmp_path / 'speaking.db'}"
    monkeypatch.setenv("SPEAKING_DATABASE_URL", url)
    monkeypatch.setenv("SPEAKING_SESSION_SECRET", "test-secret")
    get_settings.cache_clear()
    dispose_engine()
    create_schema()
    yield url
    dispose_engine()
    get_settings.cache_clear()


@pytest.fixture
def api_client(database: str) -> TestClient:
    return TestClient(app)


@pytest.fixture
def make_user(database: str) -> UserFactory:
    """Create an account directly and return ``(user_id, auth_headers)``."""

    def factory(email: str = "learner@example.com", password: str = "password123") -> Tuple[str, Dict[str, str]]:
        with session_scope() as session:
            account = user_accounts.create(session, email=email, password_hash=hash_password(password))
            user_id = account.id
        token, _ = create_session_token(user_id)
        return user_id, {"Authorization": f"Bearer {token}"}

    return factory


@pytest.fixture
def events() -> Iterator[List[TelemetryEvent]]:
    captured: List[TelemetryEvent] = []
    register_listener(captured.append)
    yield captured
    clear_listeners()
