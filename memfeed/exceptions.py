"""Error taxonomy for the memory feed layer.

Pagination recovers locally from network and not-found failures by degrading
to placeholders or partial pages. Validation and auth failures always reach
the caller. Invalid sync transitions are programming errors.
"""

from typing import Optional


class MemfeedError(RuntimeError):
    """Base class for all memfeed errors.

    Attributes:
        message: Error message
        retryable: Whether retrying the same call can succeed
    """

    retryable: bool = False

    def __init__(self, message: str, *, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.cause = cause


class AuthRequiredError(MemfeedError):
    """No usable session. Surfaced as a sign-in prompt, never retried."""


class NetworkUnavailableError(MemfeedError):
    """Remote source unreachable or timed out."""

    retryable = True


class ValidationError(MemfeedError, ValueError):
    """Caller supplied invalid input (e.g. an empty search query)."""


class NotFoundError(MemfeedError):
    """Requested record was deleted or is not accessible."""


class InvalidStateTransitionError(MemfeedError):
    """Sync state machine was asked to take an edge that does not exist."""

    def __init__(self, record_id: str, current: str, requested: str, reason: Optional[str] = None):
        message = f"Invalid sync transition for {record_id}: {current} -> {requested}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)
        self.record_id = record_id
        self.current = current
        self.requested = requested


def user_message(error: BaseException) -> str:
    """Get a user-friendly message for an error, without technical details."""
    if isinstance(error, AuthRequiredError):
        return "Please sign in to see your memories."
    if isinstance(error, ValidationError):
        return "Please enter a search query." if "query" in str(error).lower() else str(error)
    if isinstance(error, NotFoundError):
        return "This memory is no longer available."
    if isinstance(error, NetworkUnavailableError):
        text = str(error).lower()
        if "offline" in text:
            return "You appear to be offline. Please check your internet connection and try again."
        if "timed out" in text or "timeout" in text:
            return "Request timed out. Please try again."
        return "Unable to connect. Please check your internet connection and try again."
    return "Failed to load memories. Please try again."
