"""Application-level exception types.

This module defines the errors used across adapters and services, enabling
consistent error handling, logging, and startup behavior.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability.

    Fields are optional; only the ones relevant to an error are populated.
    """

    code: str
    message: str
    hint: str
    operation: str
    key_hash: str
    variable: str
    request_id: str
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for application failures.

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


@dataclass
class StoreError(AppError):
    """Raised when the ordered counter store cannot complete an operation.

    The rate limiter treats this as "unable to make a safe decision" and
    rejects the request.

    Attributes:
        operation: Store operation that failed (add, count_from, prune_before).
        key: Store key the operation targeted.
    """

    operation: str = ""
    key: str = ""

    @classmethod
    def wrap(cls, operation: str, key: str, cause: BaseException) -> "StoreError":
        """Build a StoreError describing a failed store call.

        Callers should raise the result ``from cause`` so the original
        exception stays attached.
        """

        return cls(
            code="store_unavailable",
            message=f"counter store {operation} failed: {cause}",
            operation=operation,
            key=key,
        )


class ConfigurationError(AppError):
    """Raised when required configuration is missing or invalid at startup."""
