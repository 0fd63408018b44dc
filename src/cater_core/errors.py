"""Shared error types for cater_core."""

from __future__ import annotations


class ResilienceError(Exception):
    """Base exception for errors raised by the resilience layer itself."""


class TransientError(RuntimeError):
    """Generic retry-safe transient dependency failure."""


class ExternalServiceError(TransientError):
    """A third-party service (messaging provider, backend) call failed.

    Attributes:
        service: Name of the failing service.
        status_code: HTTP status reported by the service, if any.
    """

    def __init__(
        self,
        service: str,
        message: str | None = None,
        *,
        status_code: int | None = None,
    ) -> None:
        self.service = service
        self.status_code = status_code
        super().__init__(message or f"external service error: {service}")


class RetryError(ResilienceError):
    """Raised when every retry attempt of an operation has failed.

    Attributes:
        attempts: Number of times the operation was invoked.
        last_error: Error raised by the final attempt.
        errors: Errors raised by every attempt, oldest first.
    """

    def __init__(
        self,
        attempts: int,
        last_error: BaseException,
        errors: tuple[BaseException, ...] = (),
    ) -> None:
        self.attempts = attempts
        self.last_error = last_error
        self.errors = errors or (last_error,)
        super().__init__(f"operation failed after {attempts} attempt(s)")
