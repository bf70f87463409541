"""
Error classification for the play flow.

Every failure on the request path lands in exactly one ErrorCode category.
Each category carries:
- An HTTP status code for the response
- A fixed, emoji-prefixed message shown to the user
- A log level

Callers only ever see the user message; the internal message and details
are for logs.
"""

import asyncio
from enum import Enum
from typing import Optional, Dict, Any

import httpx
import structlog

logger = structlog.get_logger()


class ErrorCode(Enum):
    """Closed set of user-facing failure categories."""

    VALIDATION = "VALIDATION"
    NOT_FOUND = "NOT_FOUND"
    UPSTREAM_TIMEOUT = "UPSTREAM_TIMEOUT"
    UPSTREAM_RATE_LIMITED = "UPSTREAM_RATE_LIMITED"
    UPSTREAM_FAILURE = "UPSTREAM_FAILURE"
    UNEXPECTED = "UNEXPECTED"


STATUS_CODES = {
    ErrorCode.VALIDATION: 400,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.UPSTREAM_TIMEOUT: 504,
    ErrorCode.UPSTREAM_RATE_LIMITED: 429,
    ErrorCode.UPSTREAM_FAILURE: 502,
    ErrorCode.UNEXPECTED: 500,
}

USER_MESSAGES = {
    ErrorCode.VALIDATION: "🎵 Provide a song name!",
    ErrorCode.NOT_FOUND: "😕 Couldn't find that song. Try another one!",
    ErrorCode.UPSTREAM_TIMEOUT: "⏳ The converter took too long to respond. Please try again.",
    ErrorCode.UPSTREAM_RATE_LIMITED: "🚦 Too many requests right now. Wait a moment and try again.",
    ErrorCode.UPSTREAM_FAILURE: "⚠️ Couldn't convert that track right now. Try another one!",
    ErrorCode.UNEXPECTED: "💥 Something went wrong. Please try again later.",
}

MISSING_QUERY_MESSAGE = USER_MESSAGES[ErrorCode.VALIDATION]
QUERY_TOO_LONG_MESSAGE = "📝 Song name too long! Max {max_length} chars."
SEARCH_UNAVAILABLE_MESSAGE = "🔍 Search is unavailable right now. Please try again."


class PlayError(Exception):
    """
    Base exception for classified play-flow errors.

    Example:
        >>> raise PlayError(
        ...     ErrorCode.NOT_FOUND,
        ...     "No video candidate longer than 30s",
        ...     {"query": "shape of you"}
        ... )
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        user_message: Optional[str] = None
    ):
        """
        Initialize play error.

        Args:
            code: Error category
            message: Detailed error message for logging
            details: Additional context (stage, upstream status, etc.)
            user_message: Optional override for the category's user message
        """
        self.code = code
        self.message = message
        self.details = details or {}
        self._user_message = user_message
        super().__init__(self.message)

    @property
    def status_code(self) -> int:
        return STATUS_CODES[self.code]

    @property
    def user_message(self) -> str:
        if self._user_message:
            return self._user_message
        return USER_MESSAGES[self.code]

    def to_dict(self) -> Dict[str, Any]:
        """Response body for this error. Internal message and details are never included."""
        return {"error": self.user_message}

    def log_error(self) -> None:
        """
        Log error with a level matching its category.

        - Client and upstream errors: WARNING
        - Unexpected errors: ERROR
        """
        log_data = {
            "error_code": self.code.value,
            "message": self.message,
            **self.details,
        }
        if self.code == ErrorCode.UNEXPECTED:
            logger.error("play_error", **log_data)
        else:
            logger.warning("play_error", **log_data)

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"


class QueryValidationError(PlayError):
    """Missing, blank or oversized query."""

    def __init__(self, message: str, user_message: Optional[str] = None, details: Optional[Dict] = None):
        super().__init__(ErrorCode.VALIDATION, message, details, user_message)


class NotFoundError(PlayError):
    """No acceptable search candidate."""

    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(ErrorCode.NOT_FOUND, message, details)


class UpstreamTimeout(PlayError):
    """An upstream call exceeded its deadline."""

    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(ErrorCode.UPSTREAM_TIMEOUT, message, details)


class UpstreamRateLimited(PlayError):
    """The conversion API signaled throttling."""

    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(ErrorCode.UPSTREAM_RATE_LIMITED, message, details)


class UpstreamFailure(PlayError):
    """Upstream reachable (or not) but produced nothing usable."""

    def __init__(self, message: str, details: Optional[Dict] = None, user_message: Optional[str] = None):
        super().__init__(ErrorCode.UPSTREAM_FAILURE, message, details, user_message)


class UnexpectedError(PlayError):
    """Anything not otherwise classified."""

    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(ErrorCode.UNEXPECTED, message, details)


def classify_error(error: BaseException) -> PlayError:
    """
    Map any exception to a PlayError.

    Args:
        error: Exception to classify

    Returns:
        The error itself if already classified, otherwise a new PlayError

    Example:
        >>> classify_error(asyncio.TimeoutError()).code
        <ErrorCode.UPSTREAM_TIMEOUT: 'UPSTREAM_TIMEOUT'>
        >>> classify_error(KeyError("x")).code
        <ErrorCode.UNEXPECTED: 'UNEXPECTED'>
    """
    if isinstance(error, PlayError):
        return error

    if isinstance(error, (asyncio.TimeoutError, httpx.TimeoutException)):
        return UpstreamTimeout(
            f"Upstream deadline exceeded: {type(error).__name__}",
            {"exc_type": type(error).__name__}
        )

    return UnexpectedError(
        f"Unclassified failure: {error}",
        {"exc_type": type(error).__name__}
    )
