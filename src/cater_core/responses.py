"""Convert resilience failures into HTTP error payloads for function handlers.

Responses never carry a traceback or the repr of an unexpected error.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime

from cater_core.circuit_breaker import CircuitBreakerError
from cater_core.errors import ExternalServiceError, RetryError

MAX_MESSAGE_LENGTH = 1024
CODE_CIRCUIT_OPEN = "CIRCUIT_OPEN"
CODE_EXTERNAL_SERVICE = "EXTERNAL_SERVICE_ERROR"
CODE_INTERNAL = "INTERNAL_ERROR"
_INTERNAL_MESSAGE = "An unexpected error occurred"


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _truncate(value: str, *, limit: int = MAX_MESSAGE_LENGTH) -> str:
    """Truncate a message to the configured response size limit."""
    return value[:limit]


@dataclass(frozen=True)
class ErrorResponse:
    """JSON body and status for one failed handler invocation."""

    code: str
    message: str
    status_code: int
    retryable: bool
    timestamp: str
    details: Mapping[str, object] = field(default_factory=dict)

    def to_dict(self) -> dict[str, object]:
        body: dict[str, object] = {
            "code": self.code,
            "message": self.message,
            "statusCode": self.status_code,
            "retryable": self.retryable,
            "timestamp": self.timestamp,
        }
        if self.details:
            body["details"] = dict(self.details)
        return body

    def retry_after_header(self) -> str | None:
        """Return a ``Retry-After`` value in whole seconds, when one applies."""
        retry_after = self.details.get("retry_after")
        if not isinstance(retry_after, int | float):
            return None
        return str(max(math.ceil(retry_after), 0))


def to_error_response(error: BaseException) -> ErrorResponse:
    """Map any caught error to a uniform, trace-free ``ErrorResponse``."""
    timestamp = _utcnow().isoformat()

    if isinstance(error, CircuitBreakerError):
        return ErrorResponse(
            code=CODE_CIRCUIT_OPEN,
            message=_truncate(
                f"Service temporarily unavailable: {error.breaker_name}"
            ),
            status_code=503,
            retryable=True,
            timestamp=timestamp,
            details={
                "resource": error.breaker_name,
                "retry_after": error.retry_after,
            },
        )

    if isinstance(error, RetryError):
        root = error.last_error
        status_code = 503
        if isinstance(root, ExternalServiceError) and root.status_code is not None:
            status_code = root.status_code
        return ErrorResponse(
            code=CODE_EXTERNAL_SERVICE,
            message=_truncate(str(error)),
            status_code=status_code,
            retryable=True,
            timestamp=timestamp,
            details={"attempts": error.attempts},
        )

    if isinstance(error, ExternalServiceError):
        return ErrorResponse(
            code=CODE_EXTERNAL_SERVICE,
            message=_truncate(str(error)),
            status_code=503 if error.status_code is None else error.status_code,
            retryable=True,
            timestamp=timestamp,
            details={"service": error.service},
        )

    return ErrorResponse(
        code=CODE_INTERNAL,
        message=_INTERNAL_MESSAGE,
        status_code=500,
        retryable=False,
        timestamp=timestamp,
    )
