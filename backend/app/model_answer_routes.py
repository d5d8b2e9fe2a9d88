"""Cross-user cache of model answers."""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, Response, status
from sqlalchemy.exc import SQLAlchemyError

from .api_models import CreateModelAnswerRequest, ModelAnswerLookupResponse, ModelAnswerStoredResponse
from .db.session import session_scope
from .repositories.model_answers import model_answer_payload, model_answers, question_hash
from .telemetry import emit_event


router = APIRouter(prefix="/api/model-answers", tags=["model-answers"])
logger = logging.getLogger(__name__)


@router.get(
    "",
    response_model=ModelAnswerLookupResponse,
    response_model_by_alias=True,
    response_model_exclude_none=True,
)
def lookup_model_answer(
    question: Optional[str] = Query(default=None),
    part: Optional[int] = Query(default=None, ge=1, le=3),
    topic: Optional[str] = Query(default=None, max_length=200),
) -> ModelAnswerLookupResponse:
    if question is None or not question.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Question is required")

    try:
        with session_scope() as session:
            hit = model_answers.record_hit(session, question)
            if hit is not None:
                result = ModelAnswerLookupResponse(found=True, model_answer=model_answer_payload(hit))
            else:
                similar = model_answers.similar(session, part=part, topic=topic)
                result = ModelAnswerLookupResponse(
                    found=False,
                    similar_answers=[model_answer_payload(row) for row in similar],
                )
    except SQLAlchemyError as exc:
        logger.exception("Model answer lookup failed: %s", exc)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Internal server error") from exc

    emit_event(
        "model_answer_lookup",
        question_hash=question_hash(question)[:12],
        found=result.found,
        similar=len(result.similar_answers or []),
    )
    return result


@router.post("", response_model=ModelAnswerStoredResponse, response_model_by_alias=True)
def store_model_answer(payload: CreateModelAnswerRequest, response: Response) -> ModelAnswerStoredResponse:
    try:
        with session_scope() as session:
            model, created = model_answers.insert_if_absent(session, payload)
            stored = model_answer_payload(model)
    except SQLAlchemyError as exc:
        logger.exception("Failed to cache model answer: %s", exc)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Internal server error") from exc

    if created:
        response.status_code = status.HTTP_201_CREATED
        return ModelAnswerStoredResponse(message="Model answer cached successfully", model_answer=stored)
    return ModelAnswerStoredResponse(message="Model answer already exists", model_answer=stored)
