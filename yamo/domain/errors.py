from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    INVALID_CREDENTIAL = "invalid_credential"
    UNAUTHORIZED = "unauthorized"
    TRANSITION_FAILURE = "transition_failure"


class DecodeFailure(str, Enum):
    MALFORMED = "malformed"
    EXPIRED = "expired"


class TokenDecodeError(Exception):
    """Raised when a session token cannot be trusted."""

    def __init__(self, reason: DecodeFailure, message: str | None = None):
        self.reason = reason
        super().__init__(message or f"Token is {reason.value}")

    @property
    def kind(self) -> ErrorKind:
        return ErrorKind.INVALID_CREDENTIAL


_HTTP_STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.UNAUTHENTICATED: 401,
    ErrorKind.INVALID_CREDENTIAL: 403,
    ErrorKind.UNAUTHORIZED: 403,
}


def error_http_status(kind: ErrorKind) -> int:
    # transition failures never cross the wire
    return _HTTP_STATUS_BY_KIND.get(kind, 500)
