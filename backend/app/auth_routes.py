"""Account registration and session token issuance."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from .api_models import AccountPayload, LoginRequest, RegisterRequest, SessionTokenResponse
from .auth import SESSION_COOKIE, create_session_token, get_current_user_id, hash_password, verify_password
from .db.session import session_scope
from .repositories.users import user_accounts


router = APIRouter(prefix="/api/auth", tags=["auth"])
logger = logging.getLogger(__name__)


@router.post("/register", response_model=AccountPayload, status_code=status.HTTP_201_CREATED)
def register(payload: RegisterRequest) -> AccountPayload:
    try:
        with session_scope() as session:
            if user_accounts.get_by_email(session, payload.email) is not None:
                raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Email is already registered")
            account = user_accounts.create(
                session,
                email=payload.email,
                password_hash=hash_password(payload.password),
                name=payload.name,
            )
            return AccountPayload(id=account.id, email=account.email, name=account.name)
    except IntegrityError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Email is already registered") from exc
    except SQLAlchemyError as exc:
        logger.exception("Account registration failed: %s", exc)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Internal server error") from exc


@router.post("/login", response_model=SessionTokenResponse)
def login(payload: LoginRequest, response: Response) -> SessionTokenResponse:
    with session_scope(commit=False) as session:
        account = user_accounts.get_by_email(session, payload.email)
        if account is None or not verify_password(payload.password, account.password_hash):
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Incorrect email or password")
        user = AccountPayload(id=account.id, email=account.email, name=account.name)

    token, expires_at = create_session_token(user.id)
    response.set_cookie(
        SESSION_COOKIE,
        token,
        httponly=True,
        samesite="lax",
        expires=expires_at,
    )
    return SessionTokenResponse(access_token=token, expires_at=expires_at, user=user)


@router.get("/session", response_model=AccountPayload)
def current_session(user_id: str = Depends(get_current_user_id)) -> AccountPayload:
    with session_scope(commit=False) as session:
        account = user_accounts.get(session, user_id)
        if account is None:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
        return AccountPayload(id=account.id, email=account.email, name=account.name)


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
def logout(response: Response) -> Response:
    response.delete_cookie(SESSION_COOKIE)
    response.status_code = status.HTTP_204_NO_CONTENT
    return response
