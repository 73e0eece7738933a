"""Structured error codes shared by the HTTP layer and the services.

Every error payload returned to clients has the shape::

    {"error": "<human readable message>", "details": "<optional detail>"}

``ErrorCode`` is attached to each :class:`errors.exceptions.AppError` so logs
and tests can tell failure modes apart without matching on messages.
"""

from __future__ import annotations

from enum import Enum


class ErrorCode(str, Enum):
    """Canonical failure categories."""

    INVALID_REQUEST = "INVALID_REQUEST"
    UNAUTHORIZED = "UNAUTHORIZED"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    STORE_UNAVAILABLE = "STORE_UNAVAILABLE"
    MODEL_INVOCATION_FAILED = "MODEL_INVOCATION_FAILED"
    INTERNAL_ERROR = "INTERNAL_ERROR"


def format_error(code: ErrorCode, detail: str) -> str:
    """Format an error for log lines.

    Returns:
        ``{ERROR_CODE}: {detail}``
    """
    return f"{code.value}: {detail}"


def error_body(message: str, details: str | None = None) -> dict[str, str]:
    """Build the JSON error body sent to clients."""
    body = {"error": message}
    if details:
        body["details"] = details
    return body
