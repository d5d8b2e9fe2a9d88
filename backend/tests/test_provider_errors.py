from __future__ import annotations

import httpx
import pytest
from openai import APIConnectionError

from app.provider_errors import (
    OPERATION_MESSAGES,
    VALIDATION_MESSAGES,
    ProviderError,
    ProviderErrorKind,
    classify_provider_error,
    to_provider_error,
    validation_message,
)


class FakeStatusError(Exception):
    def __init__(self, status_code: int | None = None, code: str | None = None, message: str = "failed") -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code


@pytest.mark.parametrize(
    ("exc", "expected"),
    [
        (FakeStatusError(401), ProviderErrorKind.UNAUTHORIZED),
        (FakeStatusError(429), ProviderErrorKind.RATE_LIMITED),
        (FakeStatusError(403), ProviderErrorKind.FORBIDDEN),
        (FakeStatusError(500), ProviderErrorKind.UNKNOWN),
        (RuntimeError("Network is unreachable"), ProviderErrorKind.NETWORK),
        (httpx.ConnectError("refused"), ProviderErrorKind.NETWORK),
        (ValueError("something else"), ProviderErrorKind.UNKNOWN),
    ],
)
def test_classify_provider_error(exc: Exception, expected: ProviderErrorKind) -> None:
    assert classify_provider_error(exc) is expected


def test_quota_code_wins_over_rate_limit_status() -> None:
    exc = FakeStatusError(429, code="insufficient_quota")
    assert classify_provider_error(exc) is ProviderErrorKind.QUOTA_EXHAUSTED


def test_openai_connection_error_is_network() -> None:
    exc = APIConnectionError(request=httpx.Request("GET", "https://api.openai.com/v1/models"))
    assert classify_provider_error(exc) is ProviderErrorKind.NETWORK


def test_to_provider_error_uses_operation_message() -> None:
    error = to_provider_error(FakeStatusError(401), "generate question")
    assert isinstance(error, ProviderError)
    assert error.kind is ProviderErrorKind.UNAUTHORIZED
    assert error.message == OPERATION_MESSAGES[ProviderErrorKind.UNAUTHORIZED]
    assert error.operation == "generate question"


def test_unknown_error_names_the_operation() -> None:
    error = to_provider_error(RuntimeError("boom"), "convert text to speech")
    assert error.kind is ProviderErrorKind.UNKNOWN
    assert error.message == "Failed to convert text to speech. Please try again."


def test_existing_provider_error_passes_through() -> None:
    original = ProviderError(ProviderErrorKind.FORBIDDEN, "nope", operation="validate key")
    assert to_provider_error(original, "other") is original


def test_validation_messages_cover_every_kind() -> None:
    for kind in ProviderErrorKind:
        assert validation_message(kind) == VALIDATION_MESSAGES[kind]
