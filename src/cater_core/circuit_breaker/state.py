"""Circuit breaker state primitives."""

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum


class CircuitState(StrEnum):
    """Circuit breaker state values."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass(slots=True)
class BreakerState:
    """Mutable per-resource breaker record, owned by one ``CircuitBreaker``.

    Attributes:
        name: Breaker name, also the registry key.
        state: Current mode.
        failure_count: Consecutive failures since the last success.
        success_count: Consecutive successes while ``HALF_OPEN``; zero otherwise.
        last_failure_at: Timestamp of the last counted failure, if any. Always
            set while ``OPEN``.
    """

    name: str
    state: CircuitState = CircuitState.CLOSED
    failure_count: int = 0
    success_count: int = 0
    last_failure_at: datetime | None = None
