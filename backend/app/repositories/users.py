"""User accounts backing session authentication."""

from __future__ import annotations

from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..db.models import UserAccountModel


def normalize_email(email: str) -> str:
    normalized = email.strip().lower()
    if not normalized:
        raise ValueError("Email cannot be empty.")
    return normalized


class UserAccountRepository:
    def get(self, session: Session, user_id: str) -> UserAccountModel | None:
        return session.get(UserAccountModel, user_id)

    def get_by_email(self, session: Session, email: str) -> UserAccountModel | None:
        stmt = select(UserAccountModel).where(UserAccountModel.email == normalize_email(email))
        return session.execute(stmt).scalar_one_or_none()

    def create(
        self,
        session: Session,
        *,
        email: str,
        password_hash: str,
        name: Optional[str] = None,
    ) -> UserAccountModel:
        model = UserAccountModel(
            email=normalize_email(email),
            password_hash=password_hash,
            name=name.strip() if name and name.strip() else None,
        )
        session.add(model)
        session.flush()
        return model


user_accounts = UserAccountRepository()

__all__ = ["UserAccountRepository", "normalize_email", "user_accounts"]
