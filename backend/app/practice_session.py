"""Practice session controller sequencing question, recording, transcription and evaluation."""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from enum import Enum
from statistics import mean
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence
from uuid import uuid4

from pydantic import BaseModel, Field

from .audio_buffers import AudioBuffer, AudioBufferRegistry
from .provider_errors import ProviderError
from .question_bank import require_part
from .speaking_client import Evaluation, clamp_band
from .telemetry import emit_event


logger = logging.getLogger(__name__)

DEFAULT_QUESTIONS_PER_PART = 5

_AUDIO_EXTENSIONS: Dict[str, str] = {
    "audio/webm": "webm",
    "audio/ogg": "ogg",
    "audio/mpeg": "mp3",
    "audio/mp3": "mp3",
    "audio/mp4": "m4a",
    "audio/x-m4a": "m4a",
    "audio/wav": "wav",
    "audio/x-wav": "wav",
}


class SpeakingClient(Protocol):
    async def generate_question(
        self, part: int, index: int, previous_responses: Optional[Sequence[str]] = None
    ) -> str: ...

    async def evaluate_response(self, text: str, part: int) -> Evaluation: ...

    async def generate_model_answer(
        self, question: str, part: int, user_response: Optional[str] = None
    ) -> str: ...

    async def text_to_speech(self, text: str) -> bytes: ...

    async def speech_to_text(self, audio: bytes, *, filename: str = ..., content_type: str = ...) -> str: ...


class SessionStateError(RuntimeError):
    """Raised when an action is not allowed in the session's current state."""


class SessionStatus(str, Enum):
    SETUP = "setup"
    ACTIVE = "active"
    COMPLETED = "completed"


class QuestionStage(str, Enum):
    LOADING = "loading"
    AWAITING_RECORDING = "awaiting_recording"
    RECORDING = "recording"
    RECORDED = "recorded"
    TRANSCRIBING = "transcribing"
    EVALUATING = "evaluating"
    EVALUATED = "evaluated"


# Stages during which the current question must not change.
_BUSY_STAGES = (
    QuestionStage.LOADING,
    QuestionStage.RECORDING,
    QuestionStage.TRANSCRIBING,
    QuestionStage.EVALUATING,
)

class PracticeQuestion(BaseModel):
    id: int
    text: str
    audio_buffer_id: Optional[str] = None


class PracticeResponse(BaseModel):
    question_id: int
    transcript: str
    audio_buffer_id: Optional[str] = None
    evaluation: Optional[Evaluation] = None
    model_answer: Optional[str] = None
    recorded_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class PracticeSessionSnapshot(BaseModel):
    session_id: str
    part: Optional[int] = None
    status: SessionStatus
    stage: Optional[QuestionStage] = None
    current_index: int
    questions_per_part: int
    is_last_question: bool
    elapsed_seconds: int
    current_question: Optional[PracticeQuestion] = None
    pending_recording_id: Optional[str] = None
    responses: List[PracticeResponse] = Field(default_factory=list)


def _filename_for(content_type: str) -> str:
    base = content_type.split(";", 1)[0].strip().lower()
    return f"audio.{_AUDIO_EXTENSIONS.get(base, 'webm')}"


class PracticeSession:
    """One practice run through a single speaking part.

    ``setup -> active -> completed``; while active each question cycles through
    :class:`QuestionStage`. Recording and playback are mutually exclusive.
    """

    def __init__(
        self,
        client: SpeakingClient,
        *,
        session_id: Optional[str] = None,
        questions_per_part: int = DEFAULT_QUESTIONS_PER_PART,
        buffers: Optional[AudioBufferRegistry] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.session_id = session_id or uuid4().hex
        self.questions_per_part = questions_per_part
        self.status = SessionStatus.SETUP
        self.part: Optional[int] = None
        self.current_index = 0
        self.stage: Optional[QuestionStage] = None
        self.questions: Dict[int, PracticeQuestion] = {}
        self.responses: List[PracticeResponse] = []
        self.buffers = buffers or AudioBufferRegistry()
        self._client = client
        self._clock = clock
        self._started_at: Optional[float] = None
        self._ended_at: Optional[float] = None
        self._completed_at: Optional[datetime] = None
        self._recording_buffer_id: Optional[str] = None
        self._playing_buffer_id: Optional[str] = None
        self.last_active_at = clock()

    # -- state helpers -------------------------------------------------

    def _transition(self, status: SessionStatus) -> None:
        previous = self.status
        self.status = status
        emit_event(
            "practice_session_transition",
            session_id=self.session_id,
            part=self.part,
            from_status=previous.value,
            to_status=status.value,
        )

    def _require_active(self) -> int:
        if self.status is not SessionStatus.ACTIVE or self.part is None:
            raise SessionStateError(f"Session is {self.status.value}, not active.")
        return self.part

    @property
    def current_question(self) -> Optional[PracticeQuestion]:
        return self.questions.get(self.current_index)

    @property
    def current_response(self) -> Optional[PracticeResponse]:
        return self.response_for(self.current_index)

    @property
    def is_last_question(self) -> bool:
        return self.current_index >= self.questions_per_part - 1

    @property
    def is_playing(self) -> bool:
        return self._playing_buffer_id is not None

    @property
    def elapsed_seconds(self) -> int:
        if self._started_at is None:
            return 0
        end = self._ended_at if self._ended_at is not None else self._clock()
        return max(int(end - self._started_at), 0)

    def touch(self) -> None:
        self.last_active_at = self._clock()

    def idle_seconds(self, now: Optional[float] = None) -> float:
        return (now if now is not None else self._clock()) - self.last_active_at

    def response_for(self, question_id: int) -> Optional[PracticeResponse]:
        for response in self.responses:
            if response.question_id == question_id:
                return response
        return None

    def transcripts(self) -> List[str]:
        return [response.transcript for response in self.responses if response.transcript]

    # -- flow ----------------------------------------------------------

    async def start(self, part: int) -> PracticeQuestion:
        if self.status is not SessionStatus.SETUP:
            raise SessionStateError("Session has already been started.")
        self.part = require_part(part)
        self.current_index = 0
        self.questions.clear()
        self.responses = []
        self.buffers.release_all()
        self._recording_buffer_id = None
        self._playing_buffer_id = None
        self._started_at = self._clock()
        self._ended_at = None
        self._transition(SessionStatus.ACTIVE)
        return await self._load_question(0)

    async def _load_question(self, index: int) -> PracticeQuestion:
        part = self._require_active()
        self.stage = QuestionStage.LOADING
        text = await self._client.generate_question(part, index, self.transcripts())
        audio_buffer_id: Optional[str] = None
        try:
            audio = await self._client.text_to_speech(text)
        except ProviderError as exc:
            logger.warning("Question %s of session %s has no audio: %s", index, self.session_id, exc.message)
        else:
            audio_buffer_id = self.buffers.register(audio, "audio/mpeg").buffer_id
        question = PracticeQuestion(id=index, text=text, audio_buffer_id=audio_buffer_id)
        self.questions[index] = question
        self.stage = QuestionStage.AWAITING_RECORDING
        return question

    def start_recording(self) -> None:
        self._require_active()
        if self.is_playing:
            raise SessionStateError("Stop playback before recording.")
        if self.current_response is not None:
            raise SessionStateError("This question already has a submitted response.")
        if self.stage not in (QuestionStage.AWAITING_RECORDING, QuestionStage.RECORDED):
            raise SessionStateError(f"Cannot start recording while {self.stage.value if self.stage else 'idle'}.")
        self.buffers.release(self._recording_buffer_id)
        self._recording_buffer_id = None
        self.stage = QuestionStage.RECORDING

    def stop_recording(self, audio: bytes, content_type: str = "audio/webm") -> AudioBuffer:
        self._require_active()
        if self.stage is not QuestionStage.RECORDING:
            raise SessionStateError("No recording is in progress.")
        if not audio:
            raise ValueError("Recorded audio is empty.")
        buffer = self.buffers.register(audio, content_type)
        self._recording_buffer_id = buffer.buffer_id
        self.stage = QuestionStage.RECORDED
        return buffer

    @property
    def pending_recording(self) -> Optional[AudioBuffer]:
        return self.buffers.get(self._recording_buffer_id)

    def begin_playback(self, buffer_id: str) -> AudioBuffer:
        if self.stage is QuestionStage.RECORDING:
            raise SessionStateError("Stop recording before playing audio.")
        buffer = self.buffers.get(buffer_id)
        if buffer is None:
            raise SessionStateError("Audio is no longer available for playback.")
        self._playing_buffer_id = buffer.buffer_id
        return buffer

    def end_playback(self) -> None:
        self._playing_buffer_id = None

    async def submit(self) -> PracticeResponse:
        part = self._require_active()
        index = self.current_index
        if self.current_response is not None:
            raise SessionStateError("This question already has a submitted response.")
        buffer = self.pending_recording
        if self.stage is not QuestionStage.RECORDED or buffer is None:
            raise SessionStateError("Record an answer before submitting.")

        self.stage = QuestionStage.TRANSCRIBING
        try:
            transcript = await self._client.speech_to_text(
                buffer.data,
                filename=_filename_for(buffer.media_type),
                content_type=buffer.media_type,
            )
        except ProviderError:
            self.stage = QuestionStage.RECORDED
            raise

        self.stage = QuestionStage.EVALUATING
        evaluation = await self._client.evaluate_response(transcript, part)
        if self.status is not SessionStatus.ACTIVE:
            raise SessionStateError("Session ended before the answer was evaluated.")
        response = PracticeResponse(
            question_id=index,
            transcript=transcript,
            audio_buffer_id=buffer.buffer_id,
            evaluation=evaluation,
        )
        self.responses.append(response)
        self._recording_buffer_id = None
        self.stage = QuestionStage.EVALUATED
        return response

    async def improve(self) -> str:
        part = self._require_active()
        question = self.current_question
        response = self.current_response
        if question is None or response is None:
            raise SessionStateError("Submit an answer before requesting an improved version.")
        response.model_answer = await self._client.generate_model_answer(question.text, part, response.transcript)
        return response.model_answer

    async def advance(self) -> Optional[PracticeQuestion]:
        """Load the next question, or return ``None`` when already on the last one.

        Rejected while the current question is loading, recording or being scored.
        The previous question's prompt audio is released; recorded answers are kept.
        """
        self._require_active()
        if self.stage in _BUSY_STAGES:
            raise SessionStateError(f"Cannot move on while {self.stage.value}.")
        if self.is_last_question:
            return None
        self.end_playback()
        self.buffers.release(self._recording_buffer_id)
        self._recording_buffer_id = None
        previous = self.current_question
        if previous is not None and previous.audio_buffer_id is not None:
            self.buffers.release(previous.audio_buffer_id)
            previous.audio_buffer_id = None
        self.current_index += 1
        return await self._load_question(self.current_index)

    def complete(self) -> None:
        self._require_active()
        if self.stage in _BUSY_STAGES:
            raise SessionStateError(f"Cannot complete while {self.stage.value}.")
        if not self.is_last_question:
            raise SessionStateError("Answer the remaining questions or exit the session.")
        self._finish()

    def exit(self) -> None:
        if self.status is SessionStatus.COMPLETED:
            return
        self._finish()

    def _finish(self) -> None:
        if self._started_at is not None:
            self._ended_at = self._clock()
        self._completed_at = datetime.now(timezone.utc)
        self._recording_buffer_id = None
        self._playing_buffer_id = None
        released = self.buffers.release_all()
        logger.info("Session %s finished; released %s audio buffers", self.session_id, released)
        self._transition(SessionStatus.COMPLETED)

    # -- views ---------------------------------------------------------

    def snapshot(self) -> PracticeSessionSnapshot:
        return PracticeSessionSnapshot(
            session_id=self.session_id,
            part=self.part,
            status=self.status,
            stage=self.stage,
            current_index=self.current_index,
            questions_per_part=self.questions_per_part,
            is_last_question=self.is_last_question,
            elapsed_seconds=self.elapsed_seconds,
            current_question=self.current_question,
            pending_recording_id=self._recording_buffer_id,
            responses=[response.model_copy(deep=True) for response in self.responses],
        )

    def history_payload(self, topic: Optional[str] = None) -> Dict[str, Any]:
        """Body for ``POST /api/user-history`` describing this session."""
        if self.part is None:
            raise SessionStateError("Session has not been started.")
        entries: List[Dict[str, Any]] = []
        bands: List[float] = []
        for index in sorted(self.questions):
            question = self.questions[index]
            response = self.response_for(index)
            entry: Dict[str, Any] = {"question": question.text}
            if response is not None:
                entry["userAnswer"] = response.transcript
                entry["timestamp"] = response.recorded_at.isoformat()
                if response.model_answer:
                    entry["modelAnswer"] = response.model_answer
                if response.evaluation is not None:
                    band = clamp_band(response.evaluation.score)
                    bands.append(band)
                    entry["evaluation"] = {
                        "bandScore": band,
                        "criteria": _uniform_criteria(band),
                        "feedback": response.evaluation.feedback,
                        "strengths": [],
                        "improvements": list(response.evaluation.suggestions),
                    }
            entries.append(entry)

        payload: Dict[str, Any] = {
            "sessionId": self.session_id,
            "part": self.part,
            "questions": entries,
            "duration": self.elapsed_seconds,
        }
        if topic:
            payload["topic"] = topic
        if bands:
            overall = clamp_band(mean(bands))
            payload["overallScore"] = {"bandScore": overall, "criteria": _uniform_criteria(overall)}
        if self._completed_at is not None:
            payload["completedAt"] = self._completed_at.isoformat()
        return payload


def _uniform_criteria(band: float) -> Dict[str, float]:
    return {
        "fluencyCoherence": band,
        "lexicalResource": band,
        "grammaticalRange": band,
        "pronunciation": band,
    }


__all__ = [
    "DEFAULT_QUESTIONS_PER_PART",
    "PracticeQuestion",
    "PracticeResponse",
    "PracticeSession",
    "PracticeSessionSnapshot",
    "QuestionStage",
    "SessionStateError",
    "SessionStatus",
    "SpeakingClient",
]
