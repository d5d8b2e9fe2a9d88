"""ORM models backing the speaking coach persistence layer."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Float, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.types import JSON

from .base import Base, TimestampMixin

JSONType = JSON


def _uuid() -> str:
    return str(uuid.uuid4())


class UserAccountModel(TimestampMixin, Base):
    __tablename__ = "users"
    __table_args__ = (Index("ix_users_email", "email", unique=True),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    email: Mapped[str] = mapped_column(String(320), nullable=False)
    name: Mapped[str | None] = mapped_column(String(128), nullable=True)
    password_hash: Mapped[str] = mapped_column(String(256), nullable=False)

    histories: Mapped[list["UserHistoryModel"]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )


class UserHistoryModel(TimestampMixin, Base):
    __tablename__ = "user_histories"
    __table_args__ = (
        Index("ix_user_histories_user_created", "user_id", "created_at"),
        Index("ix_user_histories_user_part", "user_id", "part"),
        Index("ix_user_histories_session", "session_id"),
        Index("ix_user_histories_topic", "topic"),
        Index("ix_user_histories_completed", "completed_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    session_id: Mapped[str] = mapped_column(String(128), nullable=False)
    part: Mapped[int] = mapped_column(Integer, nullable=False)
    topic: Mapped[str | None] = mapped_column(String(256), nullable=True)
    questions: Mapped[list[dict]] = mapped_column(JSONType, default=list, nullable=False)
    overall_score: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    duration: Mapped[float] = mapped_column(Float, nullable=False)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    user: Mapped[UserAccountModel] = relationship(back_populates="histories")


class ModelAnswerModel(TimestampMixin, Base):
    __tablename__ = "model_answers"
    __table_args__ = (
        Index("ix_model_answers_question_hash", "question_hash", unique=True),
        Index("ix_model_answers_part_topic", "part", "topic"),
        Index("ix_model_answers_band_score", "band_score"),
        Index("ix_model_answers_usage_count", "usage_count"),
        Index("ix_model_answers_created", "created_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    question_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    question: Mapped[str] = mapped_column(Text, nullable=False)
    part: Mapped[int] = mapped_column(Integer, nullable=False)
    topic: Mapped[str | None] = mapped_column(String(256), nullable=True)
    model_answer: Mapped[str] = mapped_column(Text, nullable=False)
    band_score: Mapped[float] = mapped_column(Float, nullable=False)
    criteria: Mapped[dict] = mapped_column(JSONType, default=dict, nullable=False)
    usage_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)


__all__ = [
    "ModelAnswerModel",
    "UserAccountModel",
    "UserHistoryModel",
]
