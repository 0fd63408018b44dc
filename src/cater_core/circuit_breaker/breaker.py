"""Core circuit breaker implementation."""

import sys
import threading
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import ParamSpec, TypeVar

from cater_core.circuit_breaker.exceptions import CircuitBreakerError
from cater_core.circuit_breaker.listeners import (
    BreakerListener,
    LoggingBreakerListener,
)
from cater_core.circuit_breaker.state import BreakerState, CircuitState

T = TypeVar("T")
P = ParamSpec("P")


def _utcnow() -> datetime:
    return datetime.now(UTC)


class _ProbeGate:
    """Bound the number of in-flight half-open probes per breaker instance."""

    def __init__(self, limit: int) -> None:
        is_gil_enabled = getattr(sys, "_is_gil_enabled", None)
        self._gil_enabled = True if is_gil_enabled is None else bool(is_gil_enabled())
        self._thread_lock: threading.Lock | None = None
        if not self._gil_enabled:
            self._thread_lock = threading.Lock()
        self._limit = limit
        self._in_flight = 0

    def _try_acquire_unlocked(self) -> bool:
        if self._in_flight >= self._limit:
            return False
        self._in_flight += 1
        return True

    def try_acquire(self) -> bool:
        if self._thread_lock is None:
            return self._try_acquire_unlocked()
        with self._thread_lock:
            return self._try_acquire_unlocked()

    def release(self) -> None:
        if self._thread_lock is None:
            self._in_flight = max(self._in_flight - 1, 0)
            return
        with self._thread_lock:
            self._in_flight = max(self._in_flight - 1, 0)


@dataclass(slots=True)
class CircuitBreakerConfig:
    """Circuit breaker configuration values.

    Attributes:
        failure_threshold: Consecutive failures while ``CLOSED`` before opening.
        success_threshold: Consecutive successes while ``HALF_OPEN`` before
            closing.
        open_timeout: Seconds that must pass after the last failure before an
            ``OPEN`` breaker lets a probe through.
        expected_exceptions: Exceptions that count as failures.
        excluded_exceptions: Exceptions that must not count as failures, for
            example validation or client-side errors. They propagate without
            touching any counter.
        half_open_max_calls: Maximum concurrent calls while ``HALF_OPEN``.
            ``None`` leaves probing unbounded: every caller that observes an
            expired cooldown may probe.
    """

    failure_threshold: int = 5
    success_threshold: int = 2
    open_timeout: float = 60.0
    expected_exceptions: tuple[type[Exception], ...] = (Exception,)
    excluded_exceptions: tuple[type[Exception], ...] = ()
    half_open_max_calls: int | None = None

    def __post_init__(self) -> None:
        if self.failure_threshold < 1:
            raise ValueError("failure_threshold must be >= 1")
        if self.success_threshold < 1:
            raise ValueError("success_threshold must be >= 1")
        if self.open_timeout <= 0:
            raise ValueError("open_timeout must be > 0")
        if self.half_open_max_calls is not None and self.half_open_max_calls < 1:
            raise ValueError("half_open_max_calls must be >= 1 when provided")


class CircuitBreaker:
    """Stateful proxy around a dangerous async operation.

    State transitions are plain attribute writes with no lock. Within one event
    loop every read-modify-write runs between suspension points, but two calls
    that both see an expired cooldown will both probe unless
    ``half_open_max_calls`` is set.
    """

    def __init__(
        self,
        name: str,
        *,
        config: CircuitBreakerConfig | None = None,
        listeners: Sequence[BreakerListener] | None = None,
    ) -> None:
        """Build a circuit breaker.

        Args:
            name: Unique breaker name, usually the guarded resource.
            config: Breaker behavior configuration. Defaults to
                ``CircuitBreakerConfig()``.
            listeners: Event hooks. Defaults to a single
                ``LoggingBreakerListener``; pass ``[]`` to disable.
        """
        self.name = name
        self.config = CircuitBreakerConfig() if config is None else config
        self._listeners: tuple[BreakerListener, ...] = (
            (LoggingBreakerListener(),) if listeners is None else tuple(listeners)
        )
        self._state = BreakerState(name=name)
        self._probe_gate: _ProbeGate | None = None
        if self.config.half_open_max_calls is not None:
            self._probe_gate = _ProbeGate(self.config.half_open_max_calls)

    def get_state(self) -> CircuitState:
        """Return the current state without evaluating the cooldown."""
        return self._state.state

    @property
    def failure_count(self) -> int:
        return self._state.failure_count

    @property
    def success_count(self) -> int:
        return self._state.success_count

    async def _emit_state_change(self, old: CircuitState, new: CircuitState) -> None:
        for listener in self._listeners:
            try:
                await listener.on_state_change(self.name, old, new)
            except Exception:
                continue

    async def _emit_call_rejected(self) -> None:
        for listener in self._listeners:
            try:
                await listener.on_call_rejected(self.name)
            except Exception:
                continue

    async def _transition(self, new: CircuitState) -> None:
        old = self._state.state
        if old == new:
            return
        self._state.state = new
        self._state.success_count = 0
        await self._emit_state_change(old, new)

    def _retry_after(self, now: datetime) -> float | None:
        """Seconds left in the cooldown, or ``None`` once a probe may run."""
        last_failure_at = self._state.last_failure_at
        if last_failure_at is None:
            return None
        elapsed = (now - last_failure_at).total_seconds()
        remaining = self.config.open_timeout - elapsed
        return None if remaining < 0 else remaining

    async def _reject(self, retry_after: float) -> CircuitBreakerError:
        await self._emit_call_rejected()
        return CircuitBreakerError(self.name, retry_after=retry_after)

    async def _record_success(self) -> None:
        state = self._state
        if state.state == CircuitState.OPEN:
            return
        state.failure_count = 0
        if state.state == CircuitState.HALF_OPEN:
            state.success_count += 1
            if state.success_count >= self.config.success_threshold:
                await self._transition(CircuitState.CLOSED)

    async def _record_failure(self) -> None:
        state = self._state
        if state.state == CircuitState.OPEN:
            return
        state.last_failure_at = _utcnow()
        if state.state == CircuitState.HALF_OPEN:
            await self._transition(CircuitState.OPEN)
            return
        state.failure_count += 1
        if state.failure_count >= self.config.failure_threshold:
            await self._transition(CircuitState.OPEN)

    async def execute(
        self,
        func: Callable[P, Awaitable[T]],
        *args: P.args,
        **kwargs: P.kwargs,
    ) -> T:
        """Invoke an async callable under circuit breaker protection.

        Args:
            func: Dangerous async callable to execute.
            *args: Positional arguments forwarded to ``func``.
            **kwargs: Keyword arguments forwarded to ``func``.

        Returns:
            The result of ``func`` when allowed and successful.

        Raises:
            CircuitBreakerError: When the circuit is open and ``func`` was not
                called.
            Exception: The original exception from ``func``, unchanged.
        """
        if self._state.state == CircuitState.OPEN:
            retry_after = self._retry_after(_utcnow())
            if retry_after is not None:
                raise await self._reject(retry_after)
            await self._transition(CircuitState.HALF_OPEN)

        probe_acquired = False
        gate = self._probe_gate
        if self._state.state == CircuitState.HALF_OPEN and gate is not None:
            if not gate.try_acquire():
                raise await self._reject(0.0)
            probe_acquired = True

        try:
            result = await func(*args, **kwargs)
        except self.config.excluded_exceptions:
            raise
        except self.config.expected_exceptions:
            await self._record_failure()
            raise
        else:
            await self._record_success()
            return result
        finally:
            if probe_acquired and gate is not None:
                gate.release()

    async def force_open(self) -> None:
        """Trip the breaker manually; the cooldown starts now."""
        self._state.last_failure_at = _utcnow()
        await self._transition(CircuitState.OPEN)

    async def reset(self) -> None:
        """Return the breaker to a healthy ``CLOSED`` state with zeroed counters."""
        self._state.failure_count = 0
        self._state.last_failure_at = None
        await self._transition(CircuitState.CLOSED)
        self._state.success_count = 0
