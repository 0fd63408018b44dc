"""Framework-agnostic async circuit breaker.

This package implements the circuit breaker pattern from *Release It!*.

Key behavior notes:
  - State is in-memory and per process. A cold start always begins ``CLOSED``.
  - ``OPEN`` fails fast until ``open_timeout`` seconds have passed since the
    last failure. The next call then moves the breaker to ``HALF_OPEN`` and
    runs as a probe.
  - Any failure while ``HALF_OPEN`` reopens the circuit. ``success_threshold``
    consecutive successes close it.
  - Probing is best-effort by default: concurrent callers that all see an
    expired cooldown may all probe. ``half_open_max_calls`` bounds that.
  - Excluded exceptions propagate without counting as success or failure.
"""

from cater_core.circuit_breaker.breaker import CircuitBreaker, CircuitBreakerConfig
from cater_core.circuit_breaker.exceptions import CircuitBreakerError
from cater_core.circuit_breaker.listeners import (
    BreakerListener,
    LoggingBreakerListener,
)
from cater_core.circuit_breaker.registry import BreakerRegistry
from cater_core.circuit_breaker.state import BreakerState, CircuitState

__all__ = [
    "BreakerListener",
    "BreakerRegistry",
    "BreakerState",
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerError",
    "CircuitState",
    "LoggingBreakerListener",
]
