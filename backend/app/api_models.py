"""Pydantic request/response payloads for the persistence and auth routes."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CriteriaScores(CamelModel):
    fluency_coherence: float = Field(ge=1, le=9)
    lexical_resource: float = Field(ge=1, le=9)
    grammatical_range: float = Field(ge=1, le=9)
    pronunciation: float = Field(ge=1, le=9)


class QuestionEvaluationPayload(CamelModel):
    band_score: float = Field(ge=1, le=9)
    criteria: CriteriaScores
    feedback: str
    strengths: List[str] = Field(default_factory=list)
    improvements: List[str] = Field(default_factory=list)


class HistoryQuestionPayload(CamelModel):
    question: str = Field(min_length=1)
    user_answer: Optional[str] = None
    model_answer: Optional[str] = None
    evaluation: Optional[QuestionEvaluationPayload] = None
    timestamp: Optional[datetime] = None


class OverallScorePayload(CamelModel):
    band_score: float = Field(ge=1, le=9)
    criteria: CriteriaScores


class CreateHistoryRequest(CamelModel):
    session_id: str = Field(min_length=1)
    part: int = Field(ge=1, le=3)
    topic: Optional[str] = None
    questions: List[HistoryQuestionPayload]
    overall_score: Optional[OverallScorePayload] = None
    duration: float = Field(ge=0)
    completed_at: Optional[datetime] = None


class HistoryPayload(CamelModel):
    id: str
    session_id: str
    part: int
    topic: Optional[str] = None
    questions: List[HistoryQuestionPayload] = Field(default_factory=list)
    overall_score: Optional[OverallScorePayload] = None
    duration: float
    completed_at: Optional[datetime] = None
    created_at: datetime


class PaginationPayload(CamelModel):
    page: int
    limit: int
    total: int
    pages: int


class HistoryPageResponse(CamelModel):
    histories: List[HistoryPayload] = Field(default_factory=list)
    pagination: PaginationPayload


class HistoryCreatedResponse(CamelModel):
    message: str
    history: HistoryPayload


class CreateModelAnswerRequest(CamelModel):
    question: str = Field(min_length=1)
    part: int = Field(ge=1, le=3)
    topic: Optional[str] = None
    model_answer: str = Field(min_length=1)
    band_score: float = Field(ge=1, le=9)
    criteria: CriteriaScores


class ModelAnswerPayload(CamelModel):
    id: str
    question: str
    part: int
    topic: Optional[str] = None
    model_answer: str
    band_score: float
    criteria: CriteriaScores
    usage_count: int


class ModelAnswerLookupResponse(CamelModel):
    found: bool
    model_answer: Optional[ModelAnswerPayload] = None
    similar_answers: Optional[List[ModelAnswerPayload]] = None


class ModelAnswerStoredResponse(CamelModel):
    message: str
    model_answer: ModelAnswerPayload


class RegisterRequest(BaseModel):
    email: str = Field(min_length=3, max_length=320, pattern=r"^[^@\s]+@[^@\s]+$")
    password: str = Field(min_length=8, max_length=256)
    name: Optional[str] = Field(default=None, max_length=128)


class LoginRequest(BaseModel):
    email: str = Field(min_length=3, max_length=320)
    password: str = Field(min_length=1, max_length=256)


class AccountPayload(BaseModel):
    id: str
    email: str
    name: Optional[str] = None


class SessionTokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_at: datetime
    user: AccountPayload


class PartSummaryPayload(CamelModel):
    part: int
    sessions: int
    average_band_score: Optional[float] = None


class DashboardResponse(CamelModel):
    account: AccountPayload
    total_sessions: int
    total_practice_seconds: float
    average_band_score: Optional[float] = None
    parts: List[PartSummaryPayload] = Field(default_factory=list)
    recent: List[HistoryPayload] = Field(default_factory=list)
