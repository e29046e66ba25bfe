from __future__ import annotations

from enum import IntEnum
from typing import Any, Optional

import httpx


class StatusCode(IntEnum):
    """HTTP status codes the session layer reacts to."""

    SUCCESS = 200
    BAD_REQUEST = 400
    UNAUTHORIZED = 401
    FORBIDDEN = 403
    NOT_FOUND = 404
    INTERNAL_ERROR = 500


class ErrorCode(IntEnum):
    """Domain specific error codes for real-time payloads."""

    PARAM_MISSING = 1004
    INVALID_PAYLOAD = 1007


ERROR_MESSAGES = {
    "network": "Network error. Please check your connection.",
    "unauthorized": "You are not authorized to perform this action.",
    "forbidden": "Access forbidden.",
    "not_found": "Requested resource not found.",
    "server": "Internal server error. Please try again later.",
    "validation": "Please check your input and try again.",
    "unexpected": "An unexpected error occurred.",
    "session_expired": "Session expired. Please login again.",
}


class ProtocolError(Exception):
    """Structured real-time protocol exception carrying status + code + message."""

    def __init__(self, status: StatusCode, code: Optional[ErrorCode] = None, message: str = "") -> None:
        self.status = status
        self.code = code
        self.message = message
        super().__init__(f"{status.name} ({int(status)}): {message} (code={code.name if code else 'n/a'})")

    def to_payload(self) -> dict:
        return {
            "status": int(self.status),
            "error_code": int(self.code) if self.code is not None else None,
            "error_message": self.message,
        }


class ApiError(Exception):
    """Base of every failure surfaced by the HTTP client."""

    def __init__(self, message: str, status: Optional[int] = None, response: Optional[httpx.Response] = None) -> None:
        self.message = message
        self.status = status
        self.response = response
        super().__init__(message if status is None else f"{status}: {message}")


class NetworkError(ApiError):
    """No response was reachable (DNS, timeout, refused connection)."""


class ClientError(ApiError):
    """4xx other than 401/404."""


class NotFoundError(ApiError):
    """404; never produces a notice, callers decide what to do."""


class ServerError(ApiError):
    """5xx."""


class AuthError(ApiError):
    """401."""


class RecoverableAuthError(AuthError):
    """First 401 of a request; absorbed by the refresh-and-retry path."""


class TerminalAuthError(AuthError):
    """401 after a retry, or a failed/impossible token refresh."""


class RequestCancelled(ApiError):
    """The request was superseded by a newer equivalent one or cancelled explicitly."""


def server_message(response: Optional[httpx.Response]) -> Optional[str]:
    """Extract the `message` field of a JSON error body, if any."""
    if response is None:
        return None
    try:
        body: Any = response.json()
    except ValueError:
        return None
    if isinstance(body, dict):
        message = body.get("message")
        if isinstance(message, str) and message:
            return message
    return None


def describe_status(status: int, message: Optional[str] = None) -> str:
    """Pick the user-facing message for a status, preferring the server's text where allowed."""
    if status == StatusCode.BAD_REQUEST:
        return message or ERROR_MESSAGES["validation"]
    if status == StatusCode.UNAUTHORIZED:
        return message or ERROR_MESSAGES["unauthorized"]
    if status == StatusCode.FORBIDDEN:
        return message or ERROR_MESSAGES["forbidden"]
    if status == StatusCode.NOT_FOUND:
        return ERROR_MESSAGES["not_found"]
    if status == StatusCode.INTERNAL_ERROR:
        return ERROR_MESSAGES["server"]
    if status > StatusCode.INTERNAL_ERROR:
        return message or ERROR_MESSAGES["server"]
    return message or ERROR_MESSAGES["unexpected"]


__all__ = [
    "ERROR_MESSAGES",
    "ApiError",
    "AuthError",
    "ClientError",
    "ErrorCode",
    "NetworkError",
    "NotFoundError",
    "ProtocolError",
    "RecoverableAuthError",
    "RequestCancelled",
    "ServerError",
    "StatusCode",
    "TerminalAuthError",
    "describe_status",
    "server_message",
]
