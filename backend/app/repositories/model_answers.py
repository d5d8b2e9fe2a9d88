"""Shared cache of model answers keyed by a normalized question hash."""

from __future__ import annotations

import hashlib
import logging
from typing import List, Optional, Tuple

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..api_models import CreateModelAnswerRequest, ModelAnswerPayload
from ..db.models import ModelAnswerModel
from .user_histories import escape_like

logger = logging.getLogger(__name__)

SIMILAR_ANSWER_LIMIT = 5


def question_hash(question: str) -> str:
    """SHA-256 of the trimmed, lowercased question text."""
    return hashlib.sha256(question.strip().lower().encode("utf-8")).hexdigest()


class ModelAnswerRepository:
    def get_by_hash(self, session: Session, digest: str) -> ModelAnswerModel | None:
        stmt = select(ModelAnswerModel).where(ModelAnswerModel.question_hash == digest)
        return session.execute(stmt).scalar_one_or_none()

    def record_hit(self, session: Session, question: str) -> ModelAnswerModel | None:
        """Return the exact match for ``question`` after atomically bumping its usage count."""
        digest = question_hash(question)
        model = self.get_by_hash(session, digest)
        if model is None:
            return None
        session.execute(
            update(ModelAnswerModel)
            .where(ModelAnswerModel.id == model.id)
            .values(usage_count=ModelAnswerModel.usage_count + 1)
            .execution_options(synchronize_session=False)
        )
        session.refresh(model)
        return model

    def similar(
        self,
        session: Session,
        *,
        part: Optional[int] = None,
        topic: Optional[str] = None,
        limit: int = SIMILAR_ANSWER_LIMIT,
    ) -> List[ModelAnswerModel]:
        stmt = select(ModelAnswerModel)
        if part is not None:
            stmt = stmt.where(ModelAnswerModel.part == part)
        if topic:
            stmt = stmt.where(ModelAnswerModel.topic.ilike(f"%{escape_like(topic)}%", escape="\\"))
        stmt = stmt.order_by(
            ModelAnswerModel.usage_count.desc(),
            ModelAnswerModel.band_score.desc(),
            ModelAnswerModel.created_at.desc(),
        ).limit(limit)
        return list(session.execute(stmt).scalars().all())

    def insert_if_absent(
        self, session: Session, request: CreateModelAnswerRequest
    ) -> Tuple[ModelAnswerModel, bool]:
        """Insert a new cached answer unless one exists for the same question.

        Returns ``(model, created)``. When a concurrent writer wins the unique
        constraint race, the stored row is returned with ``created=False``.
        """
        digest = question_hash(request.question)
        existing = self.get_by_hash(session, digest)
        if existing is not None:
            return existing, False

        model = ModelAnswerModel(
            question_hash=digest,
            question=request.question.strip(),
            part=request.part,
            topic=request.topic.strip() if request.topic else None,
            model_answer=request.model_answer.strip(),
            band_score=request.band_score,
            criteria=request.criteria.model_dump(mode="json", by_alias=True),
            usage_count=1,
        )
        session.add(model)
        try:
            session.flush()
        except IntegrityError:
            session.rollback()
            logger.info("Model answer for hash %s was inserted concurrently; returning stored row", digest[:12])
            existing = self.get_by_hash(session, digest)
            if existing is None:
                raise
            return existing, False
        return model, True


def model_answer_payload(model: ModelAnswerModel) -> ModelAnswerPayload:
    return ModelAnswerPayload.model_validate(
        {
            "id": model.id,
            "question": model.question,
            "part": model.part,
            "topic": model.topic,
            "modelAnswer": model.model_answer,
            "bandScore": model.band_score,
            "criteria": model.criteria,
            "usageCount": model.usage_count,
        }
    )


model_answers = ModelAnswerRepository()

__all__ = [
    "ModelAnswerRepository",
    "SIMILAR_ANSWER_LIMIT",
    "model_answer_payload",
    "model_answers",
    "question_hash",
]
