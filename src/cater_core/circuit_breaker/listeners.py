"""Observability hooks for circuit breakers."""

from __future__ import annotations

import logging
from typing import Protocol

from cater_core.circuit_breaker.state import CircuitState
from cater_core.logging import AnyLogger, log_info, log_warning


class BreakerListener(Protocol):
    """Listener protocol for circuit breaker events.

    Notes:
        Hooks are awaited inline by ``CircuitBreaker.execute``. Exceptions they
        raise are discarded and never alter the outcome of the protected call.
    """

    async def on_state_change(
        self, name: str, old: CircuitState, new: CircuitState
    ) -> None:
        """Handle circuit state transitions."""

    async def on_call_rejected(self, name: str) -> None:
        """Handle call rejection while the circuit is open."""


class LoggingBreakerListener:
    """Log breaker transitions and fail-fast rejections."""

    def __init__(self, logger: AnyLogger | None = None) -> None:
        self._logger = logging.getLogger(__name__) if logger is None else logger

    async def on_state_change(
        self, name: str, old: CircuitState, new: CircuitState
    ) -> None:
        log = log_warning if new == CircuitState.OPEN else log_info
        log(
            self._logger,
            "circuit_breaker.state_changed",
            breaker=name,
            old_state=str(old),
            new_state=str(new),
        )

    async def on_call_rejected(self, name: str) -> None:
        log_warning(self._logger, "circuit_breaker.call_rejected", breaker=name)
