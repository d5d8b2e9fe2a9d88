"""Classification of OpenAI provider failures into user-facing errors."""

from __future__ import annotations

from enum import Enum
from typing import Dict, Optional

import httpx
from openai import APIConnectionError


class ProviderErrorKind(str, Enum):
    UNAUTHORIZED = "unauthorized"
    RATE_LIMITED = "rate_limited"
    FORBIDDEN = "forbidden"
    QUOTA_EXHAUSTED = "quota_exhausted"
    NETWORK = "network"
    UNKNOWN = "unknown"


OPERATION_MESSAGES: Dict[ProviderErrorKind, str] = {
    ProviderErrorKind.UNAUTHORIZED: "Invalid API key. Please check your OpenAI API key in settings.",
    ProviderErrorKind.RATE_LIMITED: "API rate limit exceeded. Please try again in a few moments.",
    ProviderErrorKind.FORBIDDEN: "API access forbidden. Please check your API key permissions.",
    ProviderErrorKind.QUOTA_EXHAUSTED: "Insufficient API quota. Please check your OpenAI account billing.",
    ProviderErrorKind.NETWORK: "Network error. Please check your internet connection.",
}

VALIDATION_MESSAGES: Dict[ProviderErrorKind, str] = {
    ProviderErrorKind.UNAUTHORIZED: "Invalid API key. Please check your OpenAI API key and try again.",
    ProviderErrorKind.RATE_LIMITED: "API rate limit exceeded. Please try again later or check your OpenAI account.",
    ProviderErrorKind.FORBIDDEN: "API access forbidden. Please ensure your API key has the required permissions.",
    ProviderErrorKind.QUOTA_EXHAUSTED: "Insufficient API quota. Please check your OpenAI account billing.",
    ProviderErrorKind.NETWORK: "Failed to connect to OpenAI. Please check your internet connection and try again.",
    ProviderErrorKind.UNKNOWN: "Failed to connect to OpenAI. Please check your internet connection and try again.",
}


class ProviderError(RuntimeError):
    """A provider call failed; ``message`` is safe to show to the user."""

    def __init__(self, kind: ProviderErrorKind, message: str, *, operation: str = "") -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.operation = operation


def classify_provider_error(exc: BaseException) -> ProviderErrorKind:
    code: Optional[str] = getattr(exc, "code", None)
    if code == "insufficient_quota":
        return ProviderErrorKind.QUOTA_EXHAUSTED
    status_code = getattr(exc, "status_code", None)
    if status_code == 401:
        return ProviderErrorKind.UNAUTHORIZED
    if status_code == 429:
        return ProviderErrorKind.RATE_LIMITED
    if status_code == 403:
        return ProviderErrorKind.FORBIDDEN
    if isinstance(exc, (APIConnectionError, httpx.TransportError)):
        return ProviderErrorKind.NETWORK
    if "network" in str(exc).lower():
        return ProviderErrorKind.NETWORK
    return ProviderErrorKind.UNKNOWN


def to_provider_error(exc: BaseException, operation: str) -> ProviderError:
    if isinstance(exc, ProviderError):
        return exc
    kind = classify_provider_error(exc)
    message = OPERATION_MESSAGES.get(kind, f"Failed to {operation}. Please try again.")
    return ProviderError(kind, message, operation=operation)


def validation_message(kind: ProviderErrorKind) -> str:
    return VALIDATION_MESSAGES[kind]


__all__ = [
    "ProviderError",
    "ProviderErrorKind",
    "classify_provider_error",
    "to_provider_error",
    "validation_message",
]
