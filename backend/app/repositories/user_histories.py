"""Database-backed practice history repository."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from statistics import mean
from typing import Dict, List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..api_models import CreateHistoryRequest, HistoryPayload
from ..db.models import UserHistoryModel


def escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


@dataclass
class HistoryStats:
    total_sessions: int
    total_practice_seconds: float
    average_band_score: Optional[float]
    sessions_by_part: Dict[int, int]
    average_by_part: Dict[int, Optional[float]]


class UserHistoryRepository:
    """Append-only store of finished practice sessions, always scoped to one owner."""

    def create(self, session: Session, user_id: str, request: CreateHistoryRequest) -> UserHistoryModel:
        now = datetime.now(timezone.utc)
        questions: List[dict] = []
        for entry in request.questions:
            payload = entry.model_dump(mode="json", by_alias=True, exclude_none=True)
            payload["timestamp"] = (entry.timestamp or now).isoformat()
            questions.append(payload)

        model = UserHistoryModel(
            user_id=user_id,
            session_id=request.session_id,
            part=request.part,
            topic=request.topic.strip() if request.topic else None,
            questions=questions,
            overall_score=(
                request.overall_score.model_dump(mode="json", by_alias=True) if request.overall_score else None
            ),
            duration=request.duration,
            completed_at=request.completed_at,
        )
        session.add(model)
        session.flush()
        return model

    def _filtered(self, user_id: str, part: Optional[int], topic: Optional[str]):  # type: ignore[no-untyped-def]
        stmt = select(UserHistoryModel).where(UserHistoryModel.user_id == user_id)
        if part is not None:
            stmt = stmt.where(UserHistoryModel.part == part)
        if topic:
            stmt = stmt.where(UserHistoryModel.topic.ilike(f"%{escape_like(topic)}%", escape="\\"))
        return stmt

    def list_for_user(
        self,
        session: Session,
        user_id: str,
        *,
        page: int = 1,
        limit: int = 10,
        part: Optional[int] = None,
        topic: Optional[str] = None,
    ) -> Tuple[List[UserHistoryModel], int]:
        filtered = self._filtered(user_id, part, topic)
        total = session.execute(select(func.count()).select_from(filtered.subquery())).scalar_one()
        stmt = (
            filtered.order_by(UserHistoryModel.created_at.desc(), UserHistoryModel.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        rows = list(session.execute(stmt).scalars().all())
        return rows, int(total)

    def stats_for_user(self, session: Session, user_id: str) -> HistoryStats:
        rows = session.execute(
            select(UserHistoryModel.part, UserHistoryModel.duration, UserHistoryModel.overall_score).where(
                UserHistoryModel.user_id == user_id
            )
        ).all()
        by_part: Dict[int, List[float]] = {1: [], 2: [], 3: []}
        counts: Dict[int, int] = {1: 0, 2: 0, 3: 0}
        all_bands: List[float] = []
        total_seconds = 0.0
        for part, duration, overall in rows:
            counts[part] = counts.get(part, 0) + 1
            total_seconds += float(duration or 0)
            band = overall.get("bandScore") if isinstance(overall, dict) else None
            if isinstance(band, (int, float)):
                by_part.setdefault(part, []).append(float(band))
                all_bands.append(float(band))
        return HistoryStats(
            total_sessions=len(rows),
            total_practice_seconds=total_seconds,
            average_band_score=round(mean(all_bands), 2) if all_bands else None,
            sessions_by_part=counts,
            average_by_part={key: (round(mean(values), 2) if values else None) for key, values in by_part.items()},
        )


def history_payload(model: UserHistoryModel) -> HistoryPayload:
    return HistoryPayload.model_validate(
        {
            "id": model.id,
            "sessionId": model.session_id,
            "part": model.part,
            "topic": model.topic,
            "questions": model.questions or [],
            "overallScore": model.overall_score,
            "duration": model.duration,
            "completedAt": model.completed_at,
            "createdAt": model.created_at,
        }
    )


user_histories = UserHistoryRepository()

__all__ = ["HistoryStats", "UserHistoryRepository", "escape_like", "history_payload", "user_histories"]
