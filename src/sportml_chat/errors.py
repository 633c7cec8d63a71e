"""sportml-chat: Exceptions raised at the request boundary."""

from __future__ import annotations


class ChatError(Exception):
    """Base class for errors that map to a user-facing response."""

    status_code = 500


class ValidationError(ChatError):
    """Missing, blank, oversized or unparsable input."""

    status_code = 400


class RateLimitExceeded(ChatError):
    """The client used up its sliding-window allowance."""

    status_code = 429

    def __init__(self, message: str, retry_after: int = 60) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class ServiceUnavailable(ChatError):
    """Every provider failed or was skipped."""

    status_code = 503

    def __init__(
        self,
        message: str,
        suggestions: list[str] | None = None,
        status_code: int = 503,
    ) -> None:
        super().__init__(message)
        self.suggestions = suggestions or []
        self.status_code = status_code


class ConfigurationError(ValueError):
    """Invalid settings detected at startup."""
