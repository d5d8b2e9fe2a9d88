from __future__ import annotations

from typing import Any, Dict, List

from fastapi.testclient import TestClient

from app.api_models import CreateModelAnswerRequest
from app.db.session import session_scope
from app.repositories.model_answers import ModelAnswerRepository, question_hash
from app.telemetry import TelemetryEvent


def _answer_body(question: str, *, part: int = 1, topic: str | None = None, band: float = 7.0, answer: str = "Well, I think...") -> Dict[str, Any]:
    body: Dict[str, Any] = {
        "question": question,
        "part": part,
        "modelAnswer": answer,
        "bandScore": band,
        "criteria": {
            "fluencyCoherence": band,
            "lexicalResource": band,
            "grammaticalRange": band,
            "pronunciation": band,
        },
    }
    if topic is not None:
        body["topic"] = topic
    return body


def test_question_hash_normalizes_case_and_whitespace() -> None:
    assert question_hash("  Tell me about your HOMETOWN. ") == question_hash("tell me about your hometown.")
    assert question_hash("Tell me about your hometown.") != question_hash("Tell me about your job.")
    assert len(question_hash("anything")) == 64


def test_store_is_idempotent(api_client: TestClient, make_user) -> None:
    _, headers = make_user()

    created = api_client.post("/api/model-answers", json=_answer_body("Do you like music?"), headers=headers)
    repeated = api_client.post(
        "/api/model-answers",
        json=_answer_body("  DO YOU LIKE MUSIC?", answer="A different answer", band=8.0),
        headers=headers,
    )

    assert created.status_code == 201
    assert created.json()["message"] == "Model answer cached successfully"
    assert created.json()["modelAnswer"]["usageCount"] == 1
    assert repeated.status_code == 200
    assert repeated.json()["message"] == "Model answer already exists"
    stored = repeated.json()["modelAnswer"]
    assert stored["id"] == created.json()["modelAnswer"]["id"]
    assert stored["modelAnswer"] == "Well, I think..."
    assert stored["bandScore"] == 7.0


def test_lookup_increments_usage_by_one(api_client: TestClient, make_user, events: List[TelemetryEvent]) -> None:
    _, headers = make_user()
    api_client.post("/api/model-answers", json=_answer_body("Do you like music?"), headers=headers)

    first = api_client.get("/api/model-answers", params={"question": "do you like music?"}, headers=headers)
    second = api_client.get("/api/model-answers", params={"question": "Do you like music?  "}, headers=headers)

    assert first.status_code == 200
    assert first.json()["found"] is True
    assert first.json()["modelAnswer"]["usageCount"] == 2
    assert second.json()["modelAnswer"]["usageCount"] == 3
    lookups = [event for event in events if event.name == "model_answer_lookup"]
    assert [event.payload["found"] for event in lookups] == [True, True]


def test_lookup_miss_returns_ranked_similar_answers(api_client: TestClient, make_user) -> None:
    _, headers = make_user()
    api_client.post("/api/model-answers", json=_answer_body("Q1", part=2, topic="Travel", band=6.0), headers=headers)
    api_client.post("/api/model-answers", json=_answer_body("Q2", part=2, topic="Travel", band=8.0), headers=headers)
    api_client.post("/api/model-answers", json=_answer_body("Q3", part=2, topic="Travel", band=5.0), headers=headers)
    api_client.post("/api/model-answers", json=_answer_body("Q4", part=1, topic="Travel", band=9.0), headers=headers)
    api_client.get("/api/model-answers", params={"question": "Q3"}, headers=headers)

    response = api_client.get(
        "/api/model-answers",
        params={"question": "Unseen question", "part": 2, "topic": "travel"},
        headers=headers,
    )

    payload = response.json()
    assert payload["found"] is False
    assert "modelAnswer" not in payload
    assert [item["question"] for item in payload["similarAnswers"]] == ["Q3", "Q2", "Q1"]


def test_similar_answers_are_capped_at_five(api_client: TestClient, make_user) -> None:
    _, headers = make_user()
    for index in range(7):
        api_client.post("/api/model-answers", json=_answer_body(f"Question {index}"), headers=headers)

    payload = api_client.get("/api/model-answers", params={"question": "missing"}, headers=headers).json()

    assert len(payload["similarAnswers"]) == 5


def test_lookup_requires_question(api_client: TestClient, make_user) -> None:
    _, headers = make_user()
    assert api_client.get("/api/model-answers", headers=headers).status_code == 400
    assert api_client.get("/api/model-answers", params={"question": "   "}, headers=headers).status_code == 400


def test_store_validates_payload(api_client: TestClient, make_user) -> None:
    _, headers = make_user()
    body = _answer_body("Q")
    body["bandScore"] = 0
    response = api_client.post("/api/model-answers", json=body, headers=headers)
    assert response.status_code == 400
    assert response.json()["detail"] == "Validation failed"


def test_model_answers_require_authentication(api_client: TestClient) -> None:
    assert api_client.get("/api/model-answers", params={"question": "Q"}).status_code == 401
    assert api_client.post("/api/model-answers", json=_answer_body("Q")).status_code == 401


def test_concurrent_insert_returns_existing_row(database: str) -> None:
    repository = ModelAnswerRepository()
    request = CreateModelAnswerRequest.model_validate(_answer_body("Describe a trip.", part=2))
    with session_scope() as session:
        first, created = repository.insert_if_absent(session, request)
        first_id = first.id
    assert created is True

    class RacingRepository(ModelAnswerRepository):
        """Misses the existing row once, as if another writer inserted it after the read."""

        def __init__(self) -> None:
            self.lookups = 0

        def get_by_hash(self, session, digest):  # type: ignore[no-untyped-def]
            self.lookups += 1
            if self.lookups == 1:
                return None
            return super().get_by_hash(session, digest)

    racing = RacingRepository()
    late = CreateModelAnswerRequest.model_validate(_answer_body("describe a trip.", part=2, answer="Later answer"))
    with session_scope() as session:
        model, created = racing.insert_if_absent(session, late)
        assert created is False
        assert model.id == first_id
        assert model.model_answer == "Well, I think..."
