"""Application-level exception types.

Every failure the core can report is an ``AppError`` subclass carrying a
stable ``code`` and a human-readable ``message``; the HTTP layer picks the
status code from the subclass. Nothing here is retried in-process.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients."""

    hint: str
    http_status: int
    upstream_body: str
    operation: str
    table: str
    retry_after: int
    used: int
    limit: int
    reset_at: str
    route: str
    cafe_id: str
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class ValidationAppError(AppError):
    """Raised for malformed input, before any store or upstream call."""


class NotFoundAppError(AppError):
    """Raised when a referenced record does not exist."""


class StoreUnavailableAppError(AppError):
    """Raised when any store operation fails."""


class UpstreamAppError(AppError):
    """Raised when the places provider fails, times out or is misconfigured."""


class RateLimitedAppError(AppError):
    """Raised when the limiter denies a request.

    Not a failure of the service: ``details`` carries ``retry_after``,
    ``used``, ``limit`` and ``reset_at`` so clients can back off.
    """
