"""Session tokens and the middleware that gates protected routes."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional, Sequence, Tuple

from fastapi import HTTPException, Request, status
from jose import JWTError, jwt
from passlib.context import CryptContext
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import JSONResponse, Response
from starlette.types import ASGIApp

from .config import Settings, get_settings

logger = logging.getLogger(__name__)

PROTECTED_PREFIXES: Tuple[str, ...] = ("/api/model-answers", "/api/user-history", "/dashboard")
SESSION_COOKIE = "session_token"

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    return pwd_context.verify(password, password_hash)


def create_session_token(
    user_id: str,
    *,
    settings: Optional[Settings] = None,
    expires_delta: Optional[timedelta] = None,
) -> Tuple[str, datetime]:
    settings = settings or get_settings()
    expires_at = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=settings.session_ttl_minutes))
    token = jwt.encode(
        {"sub": user_id, "exp": expires_at},
        settings.session_secret,
        algorithm=settings.session_algorithm,
    )
    return token, expires_at


def decode_session_token(token: str, *, settings: Optional[Settings] = None) -> Optional[str]:
    settings = settings or get_settings()
    try:
        payload = jwt.decode(token, settings.session_secret, algorithms=[settings.session_algorithm])
    except JWTError as exc:
        logger.debug("Rejected session token: %s", exc)
        return None
    subject = payload.get("sub")
    return subject if isinstance(subject, str) and subject else None


def extract_token(request: Request) -> Optional[str]:
    header = request.headers.get("authorization", "")
    scheme, _, credentials = header.partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()
    cookie = request.cookies.get(SESSION_COOKIE)
    return cookie or None


def is_protected(path: str, prefixes: Sequence[str] = PROTECTED_PREFIXES) -> bool:
    return any(path.startswith(prefix) for prefix in prefixes)


class SessionAuthMiddleware(BaseHTTPMiddleware):
    """Reject unauthenticated requests to protected prefixes before any route runs."""

    def __init__(self, app: ASGIApp, prefixes: Sequence[str] = PROTECTED_PREFIXES) -> None:
        super().__init__(app)
        self._prefixes = tuple(prefixes)

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        token = extract_token(request)
        user_id = decode_session_token(token) if token else None
        request.state.user_id = user_id
        if user_id is None and is_protected(request.url.path, self._prefixes):
            return JSONResponse({"detail": "Unauthorized"}, status_code=status.HTTP_401_UNAUTHORIZED)
        return await call_next(request)


def get_current_user_id(request: Request) -> str:
    user_id = getattr(request.state, "user_id", None)
    if not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    return user_id


__all__ = [
    "PROTECTED_PREFIXES",
    "SESSION_COOKIE",
    "SessionAuthMiddleware",
    "create_session_token",
    "decode_session_token",
    "get_current_user_id",
    "hash_password",
    "is_protected",
    "verify_password",
]
