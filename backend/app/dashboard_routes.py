"""Signed-in summary of the caller's practice activity."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.exc import SQLAlchemyError

from .api_models import AccountPayload, DashboardResponse, PartSummaryPayload
from .auth import get_current_user_id
from .db.session import session_scope
from .repositories.user_histories import history_payload, user_histories
from .repositories.users import user_accounts


router = APIRouter(prefix="/dashboard", tags=["dashboard"])
logger = logging.getLogger(__name__)

RECENT_SESSION_COUNT = 5


@router.get("", response_model=DashboardResponse, response_model_by_alias=True)
def dashboard(user_id: str = Depends(get_current_user_id)) -> DashboardResponse:
    try:
        with session_scope(commit=False) as session:
            account = user_accounts.get(session, user_id)
            if account is None:
                raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
            stats = user_histories.stats_for_user(session, user_id)
            recent, _ = user_histories.list_for_user(session, user_id, page=1, limit=RECENT_SESSION_COUNT)
            return DashboardResponse(
                account=AccountPayload(id=account.id, email=account.email, name=account.name),
                total_sessions=stats.total_sessions,
                total_practice_seconds=stats.total_practice_seconds,
                average_band_score=stats.average_band_score,
                parts=[
                    PartSummaryPayload(
                        part=part,
                        sessions=stats.sessions_by_part.get(part, 0),
                        average_band_score=stats.average_by_part.get(part),
                    )
                    for part in (1, 2, 3)
                ],
                recent=[history_payload(row) for row in recent],
            )
    except SQLAlchemyError as exc:
        logger.exception("Failed to build dashboard for user %s: %s", user_id, exc)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Internal server error") from exc
