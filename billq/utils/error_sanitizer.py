"""
Client-facing error messages.

Domain errors raised for 4xx responses carry short messages written for the
reviewer ("entry is approved and cannot be edited") and are passed
through. Anything that looks like it came from the interpreter, SQLite or a credential is
replaced by a generic message for the status code. 5xx messages are always
replaced; the handler logs the original.
"""

from __future__ import annotations

import re

from billq.observability.logging import get_logger

logger = get_logger(__name__)

MAX_CLIENT_MESSAGE_LENGTH = 200

_LEAKS: tuple[tuple[str, re.Pattern[str]], ...] = tuple(
    (label, re.compile(pattern, re.IGNORECASE))
    for label, pattern in (
        ("path", r"/[^\s]+\.py|[A-Za-z]:\\[^\s]+"),
        ("traceback", r"Traceback \(most recent call last\)|File \".*\""),
        ("sql", r"sqlite3?\.|UNIQUE constraint|no such (table|column)"),
        ("secret", r"Bearer [A-Za-z0-9._-]+|[A-Za-z0-9_-]{40,}"),
        ("module", r"billq\.[a-z_.]+"),
    )
)

GENERIC_MESSAGES = {
    400: "Invalid request. Please check your input and try again.",
    401: "Authentication required.",
    403: "Access denied.",
    404: "Resource not found.",
    409: "Request conflicts with an operation in progress.",
    422: "Invalid data format.",
    500: "An internal error occurred. Please try again later.",
    502: "Upstream service unavailable.",
    503: "Service temporarily unavailable.",
}


def find_leak(message: str) -> str | None:
    """Return the kind of internal detail `message` exposes, if any."""
    for label, pattern in _LEAKS:
        if pattern.search(message):
            return label
    return None


def sanitize_error_message(message: str, status_code: int = 500) -> str:
    generic = GENERIC_MESSAGES.get(status_code, "An error occurred.")
    if status_code >= 500 or not message:
        return generic
    if len(message) >= MAX_CLIENT_MESSAGE_LENGTH or "\n" in message:
        return generic

    leak = find_leak(message)
    if leak:
        logger.warning("Replaced %d error message exposing %s details", status_code, leak)
        return generic
    return message
