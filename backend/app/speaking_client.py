"""OpenAI orchestration for question generation, evaluation, model answers and audio."""

from __future__ import annotations

import hashlib
import json
import logging
import random
from time import perf_counter
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, TypeVar

from openai import AsyncOpenAI
from pydantic import BaseModel, Field, ValidationError

from .cache import ResponseCache
from .config import Settings, get_settings
from .provider_errors import ProviderError, to_provider_error, validation_message
from .question_bank import (
    ANSWER_STRUCTURES,
    FALLBACK_FEEDBACK,
    FALLBACK_SCORE,
    FALLBACK_SUGGESTIONS,
    PART_1_QUESTIONS,
    PART_2_TOPICS,
    fallback_model_answer,
    fallback_question,
    require_part,
)
from .telemetry import emit_event


logger = logging.getLogger(__name__)

T = TypeVar("T")

QUESTION_SYSTEM_PROMPT = "You are an IELTS examiner. Generate authentic questions. Be concise."
MIN_BAND = 1.0
MAX_BAND = 9.0


class KeyValidation(BaseModel):
    is_valid: bool
    error: Optional[str] = None


class Evaluation(BaseModel):
    score: float = Field(ge=MIN_BAND, le=MAX_BAND)
    feedback: str
    suggestions: List[str] = Field(min_length=1)


class _RawEvaluation(BaseModel):
    score: float
    feedback: str
    suggestions: List[str]


def fallback_evaluation() -> Evaluation:
    return Evaluation(score=FALLBACK_SCORE, feedback=FALLBACK_FEEDBACK, suggestions=list(FALLBACK_SUGGESTIONS))


def digest(*values: str) -> str:
    hasher = hashlib.sha256()
    for value in values:
        hasher.update(value.encode("utf-8"))
        hasher.update(b"\x00")
    return hasher.hexdigest()[:16]


def clamp_band(score: float) -> float:
    bounded = min(max(float(score), MIN_BAND), MAX_BAND)
    return round(bounded * 2) / 2


def _parse_evaluation(content: str) -> Evaluation:
    try:
        data = json.loads(content)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Evaluation response was not valid JSON: {exc}") from exc
    try:
        raw = _RawEvaluation.model_validate(data)
    except ValidationError as exc:
        raise ValueError(f"Evaluation response had an unexpected shape: {exc}") from exc
    suggestions = [item.strip() for item in raw.suggestions if item and item.strip()]
    feedback = raw.feedback.strip()
    if not suggestions or not feedback:
        raise ValueError("Evaluation response is missing feedback or suggestions.")
    return Evaluation(score=clamp_band(raw.score), feedback=feedback, suggestions=suggestions)


class SpeakingCoachClient:
    """Builds prompts, calls OpenAI and applies static fallbacks.

    Question generation, evaluation, model answers and key validation never
    raise for provider failures: they log the classified error and return their
    fallback value. Text-to-speech and transcription have no sensible fallback
    and raise :class:`ProviderError` instead.
    """

    def __init__(
        self,
        api_key: str,
        *,
        cache: ResponseCache,
        settings: Optional[Settings] = None,
        provider: Any = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        if not api_key:
            raise ValueError("An OpenAI API key is required.")
        self._api_key = api_key
        self._cache = cache
        self._settings = settings or get_settings()
        self._provider = provider if provider is not None else AsyncOpenAI(api_key=api_key)
        self._rng = rng or random.Random()

    @property
    def cache(self) -> ResponseCache:
        return self._cache

    async def _call(self, operation: str, factory: Callable[[], Awaitable[T]]) -> T:
        started = perf_counter()
        try:
            result = await factory()
        except Exception as exc:  # noqa: BLE001
            error = to_provider_error(exc, operation)
            emit_event(
                "provider_call",
                operation=operation,
                status="error",
                error_kind=error.kind.value,
                duration_ms=int((perf_counter() - started) * 1000),
            )
            logger.warning("OpenAI call failed during %s (%s): %s", operation, error.kind.value, exc)
            raise error from exc
        emit_event(
            "provider_call",
            operation=operation,
            status="success",
            duration_ms=int((perf_counter() - started) * 1000),
        )
        return result

    def _cached(self, key: str, operation: str) -> Optional[Any]:
        value = self._cache.get(key)
        if value is not None:
            emit_event("response_cache_hit", operation=operation)
        return value

    async def _chat(
        self,
        operation: str,
        *,
        model: str,
        system: str,
        user: str,
        max_tokens: int,
        temperature: float,
    ) -> str:
        response = await self._call(
            operation,
            lambda: self._provider.chat.completions.create(
                model=model,
                messages=[
                    {"role": "system", "content": system},
                    {"role": "user", "content": user},
                ],
                max_tokens=max_tokens,
                temperature=temperature,
            ),
        )
        choices = getattr(response, "choices", None) or []
        if not choices:
            return ""
        content = getattr(choices[0].message, "content", None)
        return content.strip() if isinstance(content, str) else ""

    async def validate_key(self) -> KeyValidation:
        cache_key = f"validate:{digest(self._api_key)}"
        cached = self._cached(cache_key, "validate_key")
        if cached is not None:
            return cached

        try:
            await self._call("validate key", lambda: self._provider.models.list())
        except ProviderError as exc:
            result = KeyValidation(is_valid=False, error=validation_message(exc.kind))
            self._cache.set(cache_key, result, self._settings.cache_validation_failure_ttl_seconds)
            return result

        result = KeyValidation(is_valid=True)
        self._cache.set(cache_key, result, self._settings.cache_validation_ttl_seconds)
        return result

    def _question_prompt(self, part: int, previous_responses: Sequence[str]) -> str:
        if part == 1:
            seed = self._rng.choice(PART_1_QUESTIONS)
            return f'Generate a Part 1 IELTS question similar to: "{seed}". Keep it personal and concise.'
        topic = self._rng.choice(PART_2_TOPICS)
        if part == 2:
            return (
                f'Generate Part 2 IELTS cue card based on: "{topic}". '
                'Include "You should say:" with 3-4 bullet points.'
            )
        context = ""
        if previous_responses:
            context = f"Context: {', '.join(previous_responses)[:100]}"
        return (
            f'Generate Part 3 follow-up question for: "{topic}". {context} '
            "Make it analytical and discussion-focused."
        )

    async def generate_question(
        self,
        part: int,
        index: int,
        previous_responses: Optional[Sequence[str]] = None,
    ) -> str:
        require_part(part)
        responses = [item for item in (previous_responses or []) if item]
        cache_key = f"question:{part}:{index}:{digest(*responses)}"
        cached = self._cached(cache_key, "generate_question")
        if cached is not None:
            return cached

        prompt = self._question_prompt(part, responses)
        try:
            question = await self._chat(
                "generate question",
                model=self._settings.question_model,
                system=QUESTION_SYSTEM_PROMPT,
                user=prompt,
                max_tokens=80,
                temperature=0.7,
            )
        except ProviderError as exc:
            return self._fallback("generate_question", exc, fallback_question(part, index))
        if not question:
            return self._fallback("generate_question", None, fallback_question(part, index))

        self._cache.set(cache_key, question, self._settings.cache_question_ttl_seconds)
        return question

    async def evaluate_response(self, text: str, part: int) -> Evaluation:
        require_part(part)
        cache_key = f"eval:{part}:{digest(text)}"
        cached = self._cached(cache_key, "evaluate_response")
        if cached is not None:
            return cached.model_copy(deep=True)

        system = (
            f"IELTS examiner. Evaluate Part {part} response. Return JSON only:\n"
            '{"score": number between 1 and 9, "feedback": "brief feedback", '
            '"suggestions": ["tip1", "tip2", "tip3"]}'
        )
        try:
            content = await self._chat(
                "evaluate response",
                model=self._settings.evaluation_model,
                system=system,
                user=f'Response: "{text[:500]}"',
                max_tokens=200,
                temperature=0.2,
            )
        except ProviderError as exc:
            return self._fallback("evaluate_response", exc, fallback_evaluation())

        try:
            evaluation = _parse_evaluation(content)
        except ValueError as exc:
            logger.warning("Discarding unusable evaluation payload for part %s: %s", part, exc)
            return self._fallback("evaluate_response", None, fallback_evaluation())

        self._cache.set(cache_key, evaluation, self._settings.cache_evaluation_ttl_seconds)
        return evaluation.model_copy(deep=True)

    def _model_answer_messages(self, question: str, part: int, user_response: Optional[str]) -> tuple[str, str]:
        if user_response:
            task = (
                "TASK: Improve the user's response keeping personal details and core content.\n"
                "- Fix grammar and awkward phrasing\n"
                "- Enhance vocabulary appropriately\n"
                "- Improve sentence structure and flow\n"
                "- Add natural hesitations for authenticity\n"
                "- Keep personal information unchanged"
            )
            user = (
                f'Q: "{question[:200]}"\nUser: "{user_response[:300]}"\n\n'
                f"Improve following Part {part} structure."
            )
        else:
            task = "TASK: Generate a new model answer."
            user = f'Generate Part {part} answer for: "{question[:200]}" following exact structure.'

        structures = "\n".join(f"Part {key}: {value}" for key, value in ANSWER_STRUCTURES.items())
        system = (
            "You are an IELTS speaking expert. "
            f"{'Improve the user response' if user_response else 'Generate a model answer'} to band 7-7.5 level.\n\n"
            f"{task}\n\n"
            f"Follow these exact structures:\n{structures}\n\n"
            "Keep language simple and accessible. Use everyday vocabulary, mostly simple sentences, and sound "
            "like a real person having a normal conversation. Add natural hesitations (um, well, you know)."
        )
        return system, user

    async def generate_model_answer(
        self,
        question: str,
        part: int,
        user_response: Optional[str] = None,
    ) -> str:
        require_part(part)
        cache_key = f"model:{part}:{digest(question, user_response or '')}"
        cached = self._cached(cache_key, "generate_model_answer")
        if cached is not None:
            return cached

        system, user = self._model_answer_messages(question, part, user_response)
        try:
            answer = await self._chat(
                "generate model answer",
                model=self._settings.evaluation_model,
                system=system,
                user=user,
                max_tokens=300 if part == 2 else 150,
                temperature=0.7,
            )
        except ProviderError as exc:
            return self._fallback("generate_model_answer", exc, fallback_model_answer(part))
        if not answer:
            return self._fallback("generate_model_answer", None, fallback_model_answer(part))

        self._cache.set(cache_key, answer, self._settings.cache_model_answer_ttl_seconds)
        return answer

    async def text_to_speech(self, text: str) -> bytes:
        cache_key = f"tts:{digest(text)}"
        cached = self._cached(cache_key, "text_to_speech")
        if cached is not None:
            return cached

        response = await self._call(
            "convert text to speech",
            lambda: self._provider.audio.speech.create(
                model=self._settings.tts_model,
                voice=self._settings.tts_voice,
                input=text[:1000],
                speed=self._settings.tts_speed,
                response_format="mp3",
            ),
        )
        audio = bytes(response.content)
        self._cache.set(cache_key, audio, self._settings.cache_audio_ttl_seconds)
        return audio

    async def speech_to_text(
        self,
        audio: bytes,
        *,
        filename: str = "audio.webm",
        content_type: str = "audio/webm",
    ) -> str:
        response = await self._call(
            "convert speech to text",
            lambda: self._provider.audio.transcriptions.create(
                file=(filename, audio, content_type),
                model=self._settings.stt_model,
                language=self._settings.stt_language,
            ),
        )
        return str(getattr(response, "text", "") or "").strip()

    def _fallback(self, operation: str, error: Optional[ProviderError], value: T) -> T:
        emit_event(
            "provider_fallback",
            operation=operation,
            reason=error.kind.value if error else "empty_or_malformed",
        )
        return value

    def cache_stats(self) -> Dict[str, int]:
        return self._cache.stats()

    def clear_cache(self) -> None:
        self._cache.clear()


__all__ = [
    "Evaluation",
    "KeyValidation",
    "SpeakingCoachClient",
    "clamp_band",
    "digest",
    "fallback_evaluation",
]
