"""Per-user practice history endpoints."""

from __future__ import annotations

import logging
import math
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.exc import SQLAlchemyError

from .api_models import CreateHistoryRequest, HistoryCreatedResponse, HistoryPageResponse, PaginationPayload
from .auth import get_current_user_id
from .db.session import session_scope
from .repositories.user_histories import history_payload, user_histories
from .telemetry import emit_event


router = APIRouter(prefix="/api/user-history", tags=["user-history"])
logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


@router.post(
    "",
    response_model=HistoryCreatedResponse,
    response_model_by_alias=True,
    status_code=status.HTTP_201_CREATED,
)
def create_history(
    payload: CreateHistoryRequest,
    user_id: str = Depends(get_current_user_id),
) -> HistoryCreatedResponse:
    try:
        with session_scope() as session:
            model = user_histories.create(session, user_id, payload)
            history = history_payload(model)
    except SQLAlchemyError as exc:
        logger.exception("Failed to store practice history for user %s: %s", user_id, exc)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Internal server error") from exc

    emit_event(
        "user_history_recorded",
        user_id=user_id,
        history_id=history.id,
        part=history.part,
        question_count=len(history.questions),
    )
    return HistoryCreatedResponse(message="History entry created successfully", history=history)


@router.get("", response_model=HistoryPageResponse, response_model_by_alias=True)
def list_history(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=MAX_PAGE_SIZE),
    part: Optional[int] = Query(default=None, ge=1, le=3),
    topic: Optional[str] = Query(default=None, max_length=200),
    user_id: str = Depends(get_current_user_id),
) -> HistoryPageResponse:
    try:
        with session_scope(commit=False) as session:
            rows, total = user_histories.list_for_user(
                session,
                user_id,
                page=page,
                limit=limit,
                part=part,
                topic=topic,
            )
            histories = [history_payload(row) for row in rows]
    except SQLAlchemyError as exc:
        logger.exception("Failed to list practice history for user %s: %s", user_id, exc)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Internal server error") from exc

    return HistoryPageResponse(
        histories=histories,
        pagination=PaginationPayload(page=page, limit=limit, total=total, pages=math.ceil(total / limit)),
    )
