"""Application-level exception types.

This module defines domain errors used across guards, services and storage,
enabling consistent error handling, logging, and API responses. Each class
carries the HTTP status it is rendered with.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients.

    Every key is optional; set only the ones that apply.
    """

    limit: int
    max_bytes: int
    context: dict[str, Any]


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

    status_code: ClassVar[int] = 400

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class ValidationAppError(AppError):
    """Raised when client input is malformed."""


class PayloadTooLargeAppError(AppError):
    """Raised when a request body crosses the configured byte ceiling."""

    status_code = 413


class LimitExceededAppError(AppError):
    """Raised when a rate or quota limit is exhausted. Retry later."""

    status_code = 429


class AuthenticationAppError(AppError):
    """Raised when credentials or the session are missing or invalid."""

    status_code = 401


class ConflictAppError(AppError):
    """Raised when a unique resource already exists."""

    status_code = 409


class StorageAppError(AppError):
    """Raised when durable storage cannot complete an operation."""

    status_code = 500


class ProofOfWorkAppError(AppError):
    """Base class for rejected proof-of-work submissions.

    The client has to fetch a fresh challenge (or fix the request) before
    retrying.
    """

    status_code = 401


class PowMissingAppError(ProofOfWorkAppError):
    """No (or an incomplete) proof-of-work solution was supplied."""


class PowMalformedAppError(ProofOfWorkAppError):
    """The token cannot be parsed."""

    status_code = 400


class PowSignatureAppError(ProofOfWorkAppError):
    """The token signature does not match the challenge and expiry."""


class PowExpiredAppError(ProofOfWorkAppError):
    """The challenge is past its expiry."""


class PowInsufficientWorkAppError(ProofOfWorkAppError):
    """The digest does not have enough leading zero bits."""


class PowReplayAppError(ProofOfWorkAppError):
    """The token was already spent (single-use mode only)."""
