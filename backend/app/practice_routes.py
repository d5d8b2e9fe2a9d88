"""HTTP surface for live practice sessions driven by the speaking coach client."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, Optional

from fastapi import APIRouter, Depends, File, Header, HTTPException, Response, UploadFile, status
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .cache import ResponseCache
from .config import Settings, get_settings
from .practice_session import PracticeSession, PracticeSessionSnapshot, SessionStateError
from .provider_errors import ProviderError
from .speaking_client import KeyValidation, SpeakingCoachClient


router = APIRouter(prefix="/api/practice", tags=["practice"])
logger = logging.getLogger(__name__)

ClientFactory = Callable[[str, Settings], SpeakingCoachClient]

_response_cache: Optional[ResponseCache] = None
_sessions: Dict[str, PracticeSession] = {}


class ValidateKeyRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    api_key: Optional[str] = Field(default=None, max_length=512)


class StartPracticeRequest(BaseModel):
    part: int = Field(ge=1, le=3)


class CompletePracticeRequest(BaseModel):
    topic: Optional[str] = Field(default=None, max_length=200)


class CompletedPracticeResponse(BaseModel):
    snapshot: PracticeSessionSnapshot
    history: Dict[str, Any]


def get_response_cache() -> ResponseCache:
    global _response_cache
    if _response_cache is None:
        _response_cache = ResponseCache(get_settings().cache_default_ttl_seconds)
    return _response_cache


def reset_response_cache() -> None:
    global _response_cache
    if _response_cache is not None:
        _response_cache.clear()
    _response_cache = None


def reset_sessions() -> None:
    for session in list(_sessions.values()):
        session.exit()
    _sessions.clear()


def evict_idle_sessions(max_idle_seconds: float, now: Optional[float] = None) -> int:
    """Exit and forget sessions untouched for longer than ``max_idle_seconds``."""
    stale = [sid for sid, session in _sessions.items() if session.idle_seconds(now) > max_idle_seconds]
    for session_id in stale:
        session = _sessions.pop(session_id)
        session.exit()
        logger.info("Evicted idle practice session %s", session_id)
    return len(stale)


def _resolve_api_key(explicit: Optional[str], settings: Settings) -> str:
    key = (explicit or settings.openai_api_key or "").strip()
    if not key:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="An OpenAI API key is required. Provide it via the X-OpenAI-Key header.",
        )
    return key


def build_client(api_key: str, settings: Settings) -> SpeakingCoachClient:
    return SpeakingCoachClient(api_key, cache=get_response_cache(), settings=settings)


def get_client_factory() -> ClientFactory:
    return build_client


def get_practice_session(session_id: str, settings: Settings = Depends(get_settings)) -> PracticeSession:
    evict_idle_sessions(settings.practice_session_idle_seconds)
    session = _sessions.get(session_id)
    if session is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Practice session not found")
    session.touch()
    return session


@contextmanager
def _session_errors(session: Optional[PracticeSession] = None) -> Iterator[None]:
    try:
        yield
    except SessionStateError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except ProviderError as exc:
        logger.warning(
            "Provider failure (%s) in practice session %s: %s",
            exc.kind.value,
            session.session_id if session else "-",
            exc.message,
        )
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=exc.message) from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


@router.post("/validate-key", response_model=KeyValidation)
async def validate_key(
    payload: Optional[ValidateKeyRequest] = None,
    x_openai_key: Optional[str] = Header(default=None, alias="X-OpenAI-Key"),
    settings: Settings = Depends(get_settings),
    client_factory: ClientFactory = Depends(get_client_factory),
) -> KeyValidation:
    explicit = (payload.api_key if payload else None) or x_openai_key
    client = client_factory(_resolve_api_key(explicit, settings), settings)
    return await client.validate_key()


@router.post("/sessions", response_model=PracticeSessionSnapshot, status_code=status.HTTP_201_CREATED)
async def create_session(
    payload: StartPracticeRequest,
    x_openai_key: Optional[str] = Header(default=None, alias="X-OpenAI-Key"),
    settings: Settings = Depends(get_settings),
    client_factory: ClientFactory = Depends(get_client_factory),
) -> PracticeSessionSnapshot:
    client = client_factory(_resolve_api_key(x_openai_key, settings), settings)
    evict_idle_sessions(settings.practice_session_idle_seconds)
    session = PracticeSession(client, questions_per_part=settings.questions_per_part)
    with _session_errors(session):
        await session.start(payload.part)
    _sessions[session.session_id] = session
    logger.info("Started practice session %s for part %s", session.session_id, payload.part)
    return session.snapshot()


@router.get("/sessions/{session_id}", response_model=PracticeSessionSnapshot)
def get_session(session: PracticeSession = Depends(get_practice_session)) -> PracticeSessionSnapshot:
    return session.snapshot()


def _audio_response(session: PracticeSession, buffer_id: Optional[str]) -> Response:
    if buffer_id is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No audio is available")
    with _session_errors(session):
        buffer = session.begin_playback(buffer_id)
    session.end_playback()
    return Response(content=buffer.data, media_type=buffer.media_type)


@router.get("/sessions/{session_id}/questions/{question_id}/audio")
def question_audio(question_id: int, session: PracticeSession = Depends(get_practice_session)) -> Response:
    question = session.questions.get(question_id)
    if question is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Question not found")
    return _audio_response(session, question.audio_buffer_id)


@router.post("/sessions/{session_id}/recording", response_model=PracticeSessionSnapshot)
def start_recording(session: PracticeSession = Depends(get_practice_session)) -> PracticeSessionSnapshot:
    with _session_errors(session):
        session.start_recording()
    return session.snapshot()


@router.put("/sessions/{session_id}/recording", response_model=PracticeSessionSnapshot)
async def upload_recording(
    file: UploadFile = File(...),
    session: PracticeSession = Depends(get_practice_session),
) -> PracticeSessionSnapshot:
    audio = await file.read()
    with _session_errors(session):
        session.stop_recording(audio, file.content_type or "audio/webm")
    return session.snapshot()


@router.get("/sessions/{session_id}/recording/audio")
def recording_audio(session: PracticeSession = Depends(get_practice_session)) -> Response:
    pending = session.pending_recording
    return _audio_response(session, pending.buffer_id if pending else None)


@router.get("/sessions/{session_id}/responses/{question_id}/audio")
def response_audio(question_id: int, session: PracticeSession = Depends(get_practice_session)) -> Response:
    response = session.response_for(question_id)
    if response is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Response not found")
    return _audio_response(session, response.audio_buffer_id)


@router.post("/sessions/{session_id}/submit", response_model=PracticeSessionSnapshot)
async def submit_response(session: PracticeSession = Depends(get_practice_session)) -> PracticeSessionSnapshot:
    with _session_errors(session):
        await session.submit()
    return session.snapshot()


@router.post("/sessions/{session_id}/improve", response_model=PracticeSessionSnapshot)
async def improve_response(session: PracticeSession = Depends(get_practice_session)) -> PracticeSessionSnapshot:
    with _session_errors(session):
        await session.improve()
    return session.snapshot()


@router.post("/sessions/{session_id}/advance", response_model=PracticeSessionSnapshot)
async def advance_question(session: PracticeSession = Depends(get_practice_session)) -> PracticeSessionSnapshot:
    with _session_errors(session):
        question = await session.advance()
    if question is None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Already on the last question; complete the session instead.",
        )
    return session.snapshot()


@router.post("/sessions/{session_id}/complete", response_model=CompletedPracticeResponse)
def complete_session(
    payload: Optional[CompletePracticeRequest] = None,
    session: PracticeSession = Depends(get_practice_session),
) -> CompletedPracticeResponse:
    with _session_errors(session):
        session.complete()
    _sessions.pop(session.session_id, None)
    logger.info("Completed practice session %s", session.session_id)
    return CompletedPracticeResponse(
        snapshot=session.snapshot(),
        history=session.history_payload(topic=payload.topic if payload else None),
    )


@router.delete("/sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
def exit_session(session: PracticeSession = Depends(get_practice_session)) -> Response:
    session.exit()
    _sessions.pop(session.session_id, None)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


__all__ = [
    "build_client",
    "evict_idle_sessions",
    "get_client_factory",
    "get_practice_session",
    "get_response_cache",
    "reset_response_cache",
    "reset_sessions",
    "router",
]
