"""Exception types for the flashcard pipeline.

Every capability call fails with one of these kinds so that the retry
wrapper and the orchestrator can decide what to do without inspecting
provider-specific exceptions.
"""

from typing import Any


class FlashcardError(Exception):
    """Base exception for all pipeline errors.

    Attributes:
        message: Human-readable error description
        details: Additional error context
        retryable: Whether the retry wrapper may try the call again
    """

    retryable = False

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for logging."""
        return {
            "type": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


class TransientCallError(FlashcardError):
    """Timeouts, dropped connections, server errors, plain rate limiting."""

    retryable = True

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if status_code is not None:
            details["status_code"] = status_code
        super().__init__(message, details)
        self.status_code = status_code


class FatalCallError(FlashcardError):
    """Quota exhausted, bad credentials or missing permissions."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if status_code is not None:
            details["status_code"] = status_code
        super().__init__(message, details)
        self.status_code = status_code


class PipelineCancelledError(FlashcardError):
    """The caller cancelled the run; no partial result is returned."""

    def __init__(self, message: str = "Card creation was cancelled", stage: str | None = None):
        details = {"stage": stage} if stage else {}
        super().__init__(message, details)
        self.stage = stage


class MalformedResponseError(FlashcardError):
    """The capability answered, but not with anything we can parse."""

    def __init__(self, message: str, agent: str | None = None, content: str | None = None):
        details: dict[str, Any] = {}
        if agent:
            details["agent"] = agent
        if content is not None:
            details["content_preview"] = content[:200]
        super().__init__(message, details)
        self.agent = agent
