"""Application-level exception types.

This module defines the error taxonomy raised by handlers and routes. Each
type carries the HTTP status it surfaces as, so the error stage can map any
fault to a response without knowing the concrete class.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients.

    Fields are optional to keep shapes consistent without forcing every
    error to fill every key.
    """

    hint: str
    errors: dict[str, str]
    limit: int
    retry_after_ms: int | None
    resource: str
    resource_id: str
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    status: ClassVar[int] = 500

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class ValidationAppError(AppError):
    """Raised when a request body fails its declared field contracts."""

    status = 400


class UnauthenticatedError(AppError):
    """Raised when a credential is missing or rejected."""

    status = 401


class NotFoundAppError(AppError):
    """Raised when a requested resource does not exist."""

    status = 404


class AdmissionRejectedError(AppError):
    """Raised when a client exceeds its sliding-window allowance.

    Not retried by the server; the client is expected to back off.
    """

    status = 429


def status_for(exc: BaseException, default: int = 500) -> int:
    """Resolve the HTTP status a fault should surface as.

    Looks for an explicit ``status`` or ``status_code`` attribute holding an
    int in the 4xx/5xx range and falls back to ``default`` otherwise.
    """

    for attr in ("status", "status_code"):
        value = getattr(exc, attr, None)
        if isinstance(value, int) and not isinstance(value, bool) and 400 <= value <= 599:
            return value
    return default
