from __future__ import annotations

from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from app.auth import (
    SESSION_COOKIE,
    create_session_token,
    decode_session_token,
    hash_password,
    is_protected,
    verify_password,
)
from app.config import get_settings


def test_password_hashing_round_trip() -> None:
    hashed = hash_password("password123")
    assert hashed != "password123"
    assert verify_password("password123", hashed)
    assert not verify_password("password124", hashed)


def test_session_token_round_trip_and_expiry() -> None:
    token, expires_at = create_session_token("user-1")
    assert decode_session_token(token) == "user-1"
    assert expires_at > expires_at.now(expires_at.tzinfo)

    expired, _ = create_session_token("user-1", expires_delta=timedelta(seconds=-5))
    assert decode_session_token(expired) is None
    assert decode_session_token("garbage") is None


def test_token_signed_with_other_secret_is_rejected(monkeypatch) -> None:
    token, _ = create_session_token("user-1")
    monkeypatch.setenv("SPEAKING_SESSION_SECRET", "rotated-secret")
    get_settings.cache_clear()
    try:
        assert decode_session_token(token) is None
    finally:
        get_settings.cache_clear()


@pytest.mark.parametrize(
    ("path", "expected"),
    [
        ("/api/model-answers", True),
        ("/api/user-history", True),
        ("/api/user-history/anything", True),
        ("/dashboard", True),
        ("/api/practice/sessions", False),
        ("/api/auth/login", False),
        ("/healthz", False),
    ],
)
def test_protected_prefixes(path: str, expected: bool) -> None:
    assert is_protected(path) is expected


def test_register_login_and_session(api_client: TestClient) -> None:
    registered = api_client.post(
        "/api/auth/register",
        json={"email": "Learner@Example.com", "password": "password123", "name": "Sam"},
    )
    assert registered.status_code == 201
    assert registered.json()["email"] == "learner@example.com"

    duplicate = api_client.post("/api/auth/register", json={"email": "learner@example.com", "password": "password123"})
    assert duplicate.status_code == 409

    login = api_client.post("/api/auth/login", json={"email": "learner@example.com", "password": "password123"})
    assert login.status_code == 200
    body = login.json()
    assert body["token_type"] == "bearer"
    assert body["user"]["name"] == "Sam"
    assert SESSION_COOKIE in login.cookies

    with_header = api_client.get(
        "/api/auth/session",
        headers={"Authorization": f"Bearer {body['access_token']}"},
    )
    assert with_header.status_code == 200
    assert with_header.json()["id"] == registered.json()["id"]


def test_session_cookie_authenticates(api_client: TestClient) -> None:
    api_client.post("/api/auth/register", json={"email": "cookie@example.com", "password": "password123"})
    login = api_client.post("/api/auth/login", json={"email": "cookie@example.com", "password": "password123"})

    assert SESSION_COOKIE in login.cookies
    response = api_client.get("/dashboard")

    assert response.status_code == 200

    logout = api_client.post("/api/auth/logout")
    assert logout.status_code == 204
    api_client.cookies.clear()
    assert api_client.get("/dashboard").status_code == 401


def test_bad_credentials_and_short_password(api_client: TestClient) -> None:
    api_client.post("/api/auth/register", json={"email": "a@example.com", "password": "password123"})

    wrong = api_client.post("/api/auth/login", json={"email": "a@example.com", "password": "nope"})
    unknown = api_client.post("/api/auth/login", json={"email": "b@example.com", "password": "password123"})
    short = api_client.post("/api/auth/register", json={"email": "c@example.com", "password": "short"})

    assert wrong.status_code == 401
    assert unknown.status_code == 401
    assert short.status_code == 400


def test_session_route_requires_identity() -> None:
    from app.main import app

    response = TestClient(app).get("/api/auth/session")
    assert response.status_code == 401
    assert response.json() == {"detail": "Unauthorized"}


def test_dashboard_summarises_history(api_client: TestClient, make_user) -> None:
    _, headers = make_user("dash@example.com")
    criteria = {"fluencyCoherence": 6, "lexicalResource": 6, "grammaticalRange": 6, "pronunciation": 6}
    for index, (part, band) in enumerate([(1, 6.0), (1, 7.0), (3, 8.0)]):
        api_client.post(
            "/api/user-history",
            json={
                "sessionId": f"s-{index}",
                "part": part,
                "questions": [{"question": "Q"}],
                "overallScore": {"bandScore": band, "criteria": criteria},
                "duration": 60,
            },
            headers=headers,
        )

    response = api_client.get("/dashboard", headers=headers)

    assert response.status_code == 200
    payload = response.json()
    assert payload["account"]["email"] == "dash@example.com"
    assert payload["totalSessions"] == 3
    assert payload["totalPracticeSeconds"] == 180
    assert payload["averageBandScore"] == 7.0
    parts = {item["part"]: item for item in payload["parts"]}
    assert parts[1]["sessions"] == 2 and parts[1]["averageBandScore"] == 6.5
    assert parts[2]["sessions"] == 0 and parts[2]["averageBandScore"] is None
    assert len(payload["recent"]) == 3


def test_dashboard_requires_authentication(api_client: TestClient) -> None:
    assert api_client.get("/dashboard").status_code == 401
