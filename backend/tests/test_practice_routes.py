from __future__ import annotations

import json
import time
from types import SimpleNamespace
from typing import Any, Iterator, List

import pytest
from fastapi.testclient import TestClient

from app import practice_routes
from app.cache import ResponseCache
from app.config import Settings, get_settings
from app.main import app
from app.speaking_client import SpeakingCoachClient


class FakeOpenAI:
    """Answers chat prompts by kind and records audio traffic."""

    def __init__(self) -> None:
        self.transcription_error: Exception | None = None
        self.speech_inputs: List[str] = []
        self.transcribed: List[Any] = []
        self.questions_served = 0
        self.chat = SimpleNamespace(completions=SimpleNamespace(create=self._chat))
        self.models = SimpleNamespace(list=self._list_models)
        self.audio = SimpleNamespace(
            speech=SimpleNamespace(create=self._speech),
            transcriptions=SimpleNamespace(create=self._transcribe),
        )

    async def _chat(self, **kwargs: Any) -> SimpleNamespace:
        system = kwargs["messages"][0]["content"]
        if "Evaluate" in system:
            content = json.dumps({"score": 6.5, "feedback": "Solid.", "suggestions": ["Expand"]})
        elif "speaking expert" in system:
            content = "Well, a polished answer."
        else:
            self.questions_served += 1
            content = f"Generated question {self.questions_served}?"
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])

    async def _list_models(self) -> SimpleNamespace:
        return SimpleNamespace(data=[])

    async def _speech(self, **kwargs: Any) -> SimpleNamespace:
        self.speech_inputs.append(kwargs["input"])
        return SimpleNamespace(content=b"mp3:" + kwargs["input"].encode())

    async def _transcribe(self, **kwargs: Any) -> SimpleNamespace:
        if self.transcription_error is not None:
            raise self.transcription_error
        self.transcribed.append(kwargs["file"])
        return SimpleNamespace(text=f"transcript {len(self.transcribed)}")


class RateLimited(Exception):
    status_code = 429
    code = None


@pytest.fixture
def provider(monkeypatch) -> Iterator[FakeOpenAI]:
    fake = FakeOpenAI()
    keys: List[str] = []

    def factory(api_key: str, settings: Settings) -> SpeakingCoachClient:
        keys.append(api_key)
        return SpeakingCoachClient(api_key, cache=ResponseCache(), settings=settings, provider=fake)

    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.setenv("SPEAKING_QUESTIONS_PER_PART", "2")
    get_settings.cache_clear()
    app.dependency_overrides[practice_routes.get_client_factory] = lambda: factory
    fake.keys = keys  # type: ignore[attr-defined]
    yield fake
    app.dependency_overrides.clear()
    practice_routes.reset_sessions()
    get_settings.cache_clear()


HEADERS = {"X-OpenAI-Key": "sk-user"}


def _start(client: TestClient, part: int = 1) -> dict:
    response = client.post("/api/practice/sessions", json={"part": part}, headers=HEADERS)
    assert response.status_code == 201
    return response.json()


def _record(client: TestClient, session_id: str, audio: bytes = b"webm-bytes") -> dict:
    assert client.post(f"/api/practice/sessions/{session_id}/recording").status_code == 200
    response = client.put(
        f"/api/practice/sessions/{session_id}/recording",
        files={"file": ("answer.webm", audio, "audio/webm")},
    )
    assert response.status_code == 200
    return response.json()


def test_missing_api_key_is_rejected(provider: FakeOpenAI) -> None:
    client = TestClient(app)
    response = client.post("/api/practice/sessions", json={"part": 1})
    assert response.status_code == 400
    assert "API key" in response.json()["detail"]


def test_validate_key_uses_header(provider: FakeOpenAI) -> None:
    client = TestClient(app)
    response = client.post("/api/practice/validate-key", headers=HEADERS)
    assert response.status_code == 200
    assert response.json() == {"is_valid": True, "error": None}
    assert provider.keys == ["sk-user"]  # type: ignore[attr-defined]


def test_full_practice_flow(provider: FakeOpenAI) -> None:
    client = TestClient(app)
    snapshot = _start(client)
    session_id = snapshot["session_id"]
    assert snapshot["status"] == "active"
    assert snapshot["questions_per_part"] == 2
    question = snapshot["current_question"]
    assert question["text"] == "Generated question 1?"

    audio = client.get(f"/api/practice/sessions/{session_id}/questions/0/audio")
    assert audio.status_code == 200
    assert audio.content == b"mp3:Generated question 1?"
    assert audio.headers["content-type"].startswith("audio/mpeg")

    recorded = _record(client, session_id)
    assert recorded["stage"] == "recorded"
    playback = client.get(f"/api/practice/sessions/{session_id}/recording/audio")
    assert playback.content == b"webm-bytes"

    submitted = client.post(f"/api/practice/sessions/{session_id}/submit").json()
    assert submitted["stage"] == "evaluated"
    assert submitted["responses"][0]["transcript"] == "transcript 1"
    assert submitted["responses"][0]["evaluation"]["score"] == 6.5
    assert provider.transcribed[0] == ("audio.webm", b"webm-bytes", "audio/webm")

    improved = client.post(f"/api/practice/sessions/{session_id}/improve").json()
    assert improved["responses"][0]["model_answer"] == "Well, a polished answer."

    premature = client.post(f"/api/practice/sessions/{session_id}/complete")
    assert premature.status_code == 409

    advanced = client.post(f"/api/practice/sessions/{session_id}/advance").json()
    assert advanced["current_index"] == 1
    assert advanced["is_last_question"] is True
    assert client.post(f"/api/practice/sessions/{session_id}/advance").status_code == 409

    _record(client, session_id)
    client.post(f"/api/practice/sessions/{session_id}/submit")
    completed = client.post(f"/api/practice/sessions/{session_id}/complete", json={"topic": "Daily life"})

    assert completed.status_code == 200
    body = completed.json()
    assert body["snapshot"]["status"] == "completed"
    history = body["history"]
    assert history["sessionId"] == session_id
    assert history["topic"] == "Daily life"
    assert history["overallScore"]["bandScore"] == 6.5
    assert len(history["questions"]) == 2
    assert client.get(f"/api/practice/sessions/{session_id}").status_code == 404


def test_illegal_transitions_conflict(provider: FakeOpenAI) -> None:
    client = TestClient(app)
    session_id = _start(client)["session_id"]

    assert client.post(f"/api/practice/sessions/{session_id}/submit").status_code == 409
    _record(client, session_id)
    client.post(f"/api/practice/sessions/{session_id}/submit")
    assert client.post(f"/api/practice/sessions/{session_id}/submit").status_code == 409
    assert client.post(f"/api/practice/sessions/{session_id}/recording").status_code == 409


def test_transcription_failure_maps_to_bad_gateway(provider: FakeOpenAI) -> None:
    client = TestClient(app)
    session_id = _start(client)["session_id"]
    _record(client, session_id)
    provider.transcription_error = RateLimited("slow down")

    response = client.post(f"/api/practice/sessions/{session_id}/submit")

    assert response.status_code == 502
    assert response.json()["detail"] == "API rate limit exceeded. Please try again in a few moments."
    assert client.get(f"/api/practice/sessions/{session_id}").json()["stage"] == "recorded"


def test_empty_upload_is_bad_request(provider: FakeOpenAI) -> None:
    client = TestClient(app)
    session_id = _start(client)["session_id"]
    client.post(f"/api/practice/sessions/{session_id}/recording")
    response = client.put(
        f"/api/practice/sessions/{session_id}/recording",
        files={"file": ("answer.webm", b"", "audio/webm")},
    )
    assert response.status_code == 400


def test_exit_removes_session(provider: FakeOpenAI) -> None:
    client = TestClient(app)
    session_id = _start(client, part=2)["session_id"]

    assert client.delete(f"/api/practice/sessions/{session_id}").status_code == 204
    assert client.get(f"/api/practice/sessions/{session_id}").status_code == 404
    assert client.post(f"/api/practice/sessions/{session_id}/submit").status_code == 404


def test_unknown_session_is_not_found(provider: FakeOpenAI) -> None:
    client = TestClient(app)
    assert client.get("/api/practice/sessions/missing").status_code == 404


def test_invalid_part_is_rejected(provider: FakeOpenAI) -> None:
    client = TestClient(app)
    response = client.post("/api/practice/sessions", json={"part": 4}, headers=HEADERS)
    assert response.status_code == 400
    assert response.json()["detail"] == "Validation failed"


def test_response_cache_is_shared_and_resettable() -> None:
    practice_routes.reset_response_cache()
    first = practice_routes.get_response_cache()
    assert practice_routes.get_response_cache() is first
    first.set("k", "v")
    practice_routes.reset_response_cache()
    assert practice_routes.get_response_cache() is not first
    assert len(first) == 0


def test_idle_sessions_are_evicted(provider: FakeOpenAI) -> None:
    client = TestClient(app)
    stale_id = _start(client)["session_id"]

    evicted = practice_routes.evict_idle_sessions(60, now=time.monotonic() + 3600)

    assert evicted == 1
    assert client.get(f"/api/practice/sessions/{stale_id}").status_code == 404
    fresh_id = _start(client)["session_id"]
    assert practice_routes.evict_idle_sessions(60) == 0
    assert client.get(f"/api/practice/sessions/{fresh_id}").status_code == 200


def test_advance_is_rejected_while_recording(provider: FakeOpenAI) -> None:
    client = TestClient(app)
    session_id = _start(client)["session_id"]
    assert client.post(f"/api/practice/sessions/{session_id}/recording").status_code == 200

    response = client.post(f"/api/practice/sessions/{session_id}/advance")

    assert response.status_code == 409
    snapshot = client.get(f"/api/practice/sessions/{session_id}").json()
    assert snapshot["current_index"] == 0
    assert snapshot["responses"] == []
