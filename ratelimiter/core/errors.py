"""Application-level exception types.

This module defines the errors shared by the limiter, its stores and the HTTP
layer. Denial is deliberately absent: exceeding the limit is a normal
``ConsumeResult`` value, not an exception.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients."""

    code: str
    message: str
    hint: str
    field: str
    actual_value: Any
    http_status: int
    request_id: str
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


class ConfigurationAppError(AppError):
    """Raised at startup when limiter options are missing or inconsistent."""


class CounterStoreError(AppError):
    """Raised when the counter store backend cannot be reached."""
