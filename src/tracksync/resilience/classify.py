"""
Error classification for remote calls.

Decides whether a failure is transient (worth retrying) or permanent, and
maps HTTP status codes to the matching RemoteError subclass.
"""

import re
from enum import Enum
from typing import Optional

import requests

from ..core.exceptions import (
    NotFoundError,
    PermanentRemoteError,
    RemoteError,
    TransientRemoteError,
)


class ErrorCategory(str, Enum):
    """Failure category, as reported to operators."""
    TRANSIENT = "transient"
    NETWORK = "network"
    CONFIG = "config"
    PERMISSION = "permission"
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    UNKNOWN = "unknown"

    @property
    def is_transient(self) -> bool:
        return self in (ErrorCategory.TRANSIENT, ErrorCategory.NETWORK)


HTTP_CATEGORIES = {
    400: ErrorCategory.VALIDATION,
    401: ErrorCategory.CONFIG,
    403: ErrorCategory.PERMISSION,
    404: ErrorCategory.NOT_FOUND,
    409: ErrorCategory.VALIDATION,
    429: ErrorCategory.TRANSIENT,
    500: ErrorCategory.TRANSIENT,
    502: ErrorCategory.TRANSIENT,
    503: ErrorCategory.TRANSIENT,
    504: ErrorCategory.TRANSIENT,
}

HTTP_MESSAGES = {
    400: "Invalid request - check field values and formats",
    401: "Authentication failed - check your credentials",
    403: "Permission denied - insufficient permissions for this operation",
    404: "Resource not found - check the issue key",
    409: "Conflict - the resource was modified by another user",
    429: "Rate limit exceeded - too many requests",
    500: "Remote server error",
    502: "Bad gateway - remote service temporarily unavailable",
    503: "Service unavailable - remote is temporarily down",
    504: "Gateway timeout - request took too long",
}

_MESSAGE_PATTERNS = [
    (re.compile(r"timeout|timed out", re.I), ErrorCategory.TRANSIENT),
    (re.compile(r"rate.limit|too many", re.I), ErrorCategory.TRANSIENT),
    (re.compile(r"connection|network|unreachable", re.I), ErrorCategory.NETWORK),
    (re.compile(r"authentication|unauthorized|credential", re.I), ErrorCategory.CONFIG),
]


def categorize_status(status_code: Optional[int]) -> ErrorCategory:
    """Map an HTTP status code to an error category."""
    if status_code is None:
        return ErrorCategory.UNKNOWN
    return HTTP_CATEGORIES.get(status_code, ErrorCategory.UNKNOWN)


def categorize_message(message: str) -> ErrorCategory:
    """Categorise a free-form error message by keyword."""
    for pattern, category in _MESSAGE_PATTERNS:
        if pattern.search(message or ""):
            return category
    return ErrorCategory.UNKNOWN


def error_for_status(
    status_code: int,
    detail: str = "",
    entity_id: Optional[str] = None,
) -> RemoteError:
    """
    Build the RemoteError subclass matching an HTTP status code.

    Args:
        status_code: HTTP status code of the failed response
        detail: Extra detail (e.g. the response body's error messages)
        entity_id: Entity the request was about

    Returns:
        NotFoundError, TransientRemoteError or PermanentRemoteError
    """
    message = HTTP_MESSAGES.get(status_code, f"Unexpected HTTP status {status_code}")
    if detail:
        message = f"{message}: {detail}"
    category = categorize_status(status_code)
    if category == ErrorCategory.NOT_FOUND:
        return NotFoundError(message, entity_id=entity_id, status_code=status_code)
    if category.is_transient:
        return TransientRemoteError(message, status_code=status_code)
    return PermanentRemoteError(message, status_code=status_code)


def classify_error(exc: BaseException) -> ErrorCategory:
    """
    Classify an exception raised by a remote call.

    RemoteErrors are classified by their status code, falling back to their
    ``transient`` flag. Timeouts and connection failures (builtin or from
    requests) are transient. Anything else is classified by message and is
    permanent unless the message names a timeout or network problem.
    """
    if isinstance(exc, RemoteError):
        category = categorize_status(exc.status_code)
        if category != ErrorCategory.UNKNOWN:
            return category
        return ErrorCategory.TRANSIENT if exc.transient else ErrorCategory.VALIDATION
    if isinstance(exc, (requests.Timeout, TimeoutError)):
        return ErrorCategory.TRANSIENT
    if isinstance(exc, (requests.ConnectionError, ConnectionError)):
        return ErrorCategory.NETWORK
    if isinstance(exc, requests.HTTPError) and exc.response is not None:
        return categorize_status(exc.response.status_code)
    return categorize_message(str(exc))


def is_transient(exc: BaseException) -> bool:
    """True if retrying the failed call may succeed."""
    return classify_error(exc).is_transient
