import os
from functools import lru_cache
from typing import Optional

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings


DEFAULT_SESSION_SECRET = "change-me"


class Settings(BaseSettings):
    openai_api_key: Optional[str] = Field(None, alias="OPENAI_API_KEY")
    database_url: Optional[str] = Field(None, alias="SPEAKING_DATABASE_URL")
    database_pool_size: int = Field(10, alias="SPEAKING_DATABASE_POOL_SIZE")
    database_max_overflow: int = Field(10, alias="SPEAKING_DATABASE_MAX_OVERFLOW")
    database_echo: bool = Field(False, alias="SPEAKING_DATABASE_ECHO")

    session_secret: str = Field(DEFAULT_SESSION_SECRET, alias="SPEAKING_SESSION_SECRET")
    session_algorithm: str = Field("HS256", alias="SPEAKING_SESSION_ALGORITHM")
    session_ttl_minutes: int = Field(60 * 24, alias="SPEAKING_SESSION_TTL_MINUTES")

    question_model: str = Field("gpt-3.5-turbo", alias="SPEAKING_QUESTION_MODEL")
    evaluation_model: str = Field("gpt-4o-mini", alias="SPEAKING_EVALUATION_MODEL")
    tts_model: str = Field("tts-1-hd", alias="SPEAKING_TTS_MODEL")
    tts_voice: str = Field("nova", alias="SPEAKING_TTS_VOICE")
    tts_speed: float = Field(0.9, alias="SPEAKING_TTS_SPEED")
    stt_model: str = Field("whisper-1", alias="SPEAKING_STT_MODEL")
    stt_language: str = Field("en", alias="SPEAKING_STT_LANGUAGE")

    questions_per_part: int = Field(5, ge=1, alias="SPEAKING_QUESTIONS_PER_PART")
    practice_session_idle_seconds: int = Field(30 * 60, ge=1, alias="SPEAKING_PRACTICE_SESSION_IDLE_SECONDS")

    cache_default_ttl_seconds: int = Field(5 * 60, alias="SPEAKING_CACHE_DEFAULT_TTL")
    cache_validation_ttl_seconds: int = Field(10 * 60, alias="SPEAKING_CACHE_VALIDATION_TTL")
    cache_validation_failure_ttl_seconds: int = Field(2 * 60, alias="SPEAKING_CACHE_VALIDATION_FAILURE_TTL")
    cache_question_ttl_seconds: int = Field(30 * 60, alias="SPEAKING_CACHE_QUESTION_TTL")
    cache_evaluation_ttl_seconds: int = Field(60 * 60, alias="SPEAKING_CACHE_EVALUATION_TTL")
    cache_model_answer_ttl_seconds: int = Field(2 * 60 * 60, alias="SPEAKING_CACHE_MODEL_ANSWER_TTL")
    cache_audio_ttl_seconds: int = Field(60 * 60, alias="SPEAKING_CACHE_AUDIO_TTL")

    class Config:
        env_file = os.getenv("ENV_FILE", ".env")
        env_file_encoding = "utf-8"
        case_sensitive = True
        extra = "ignore"


@lru_cache
def get_settings() -> Settings:
    try:
        return Settings()  # type: ignore[arg-type]
    except ValidationError as exc:
        raise RuntimeError(f"Invalid backend configuration: {exc}") from exc
