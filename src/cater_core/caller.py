"""Retry-inside-breaker orchestration for calls to unreliable services.

``ResilientCaller.call`` resolves the breaker for a resource name, runs the
operation through ``retry_with_backoff`` inside ``CircuitBreaker.execute`` and,
when that still fails, tries an optional fallback before notifying and
re-raising the original error.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from cater_core.circuit_breaker import (
    BreakerRegistry,
    CircuitBreaker,
    CircuitState,
)
from cater_core.logging import (
    AnyLogger,
    configure_structlog,
    log_error,
    log_info,
    log_warning,
)
from cater_core.retry import RetryPolicy, retry_with_backoff
from cater_core.settings import ResilienceSettings

T = TypeVar("T")
OnFailure = Callable[[Exception], object]

DEFAULT_RETRY_POLICY = RetryPolicy(max_retries=3, initial_delay=1.0, max_delay=10.0)


class ResilientCaller:
    """Guard named resources with a breaker each and retries per call."""

    def __init__(
        self,
        *,
        registry: BreakerRegistry | None = None,
        retry_policy: RetryPolicy | None = None,
        logger: AnyLogger | None = None,
        sleep: Callable[[float], Awaitable[None]] | None = None,
    ) -> None:
        """Create a caller.

        Args:
            registry: Breakers keyed by resource name. Defaults to a fresh
                registry building breakers with default thresholds.
            retry_policy: Policy for the retry loop inside the breaker.
            logger: Structured or stdlib logger for call outcomes.
            sleep: Async sleep between retry attempts, for tests.
        """
        self._registry = BreakerRegistry() if registry is None else registry
        self._retry_policy = (
            DEFAULT_RETRY_POLICY if retry_policy is None else retry_policy
        )
        self._logger = logging.getLogger(__name__) if logger is None else logger
        self._sleep = sleep

    @classmethod
    def from_settings(
        cls,
        settings: ResilienceSettings,
        *,
        logger: AnyLogger | None = None,
    ) -> ResilientCaller:
        """Build a caller whose breakers and retries follow ``settings``."""
        breaker_config = settings.breaker_config()

        def _build_breaker(name: str) -> CircuitBreaker:
            return CircuitBreaker(name, config=breaker_config)

        return cls(
            registry=BreakerRegistry(_build_breaker),
            retry_policy=settings.retry_policy(),
            logger=logger,
        )

    @property
    def registry(self) -> BreakerRegistry:
        return self._registry

    @property
    def retry_policy(self) -> RetryPolicy:
        return self._retry_policy

    def get_state(self, name: str) -> CircuitState:
        """Return the breaker state for ``name``; unknown names are ``CLOSED``."""
        breaker = self._registry.get(name)
        return CircuitState.CLOSED if breaker is None else breaker.get_state()

    async def reset(self, name: str) -> bool:
        return await self._registry.reset(name)

    def clear(self) -> None:
        self._registry.clear()

    async def call(
        self,
        name: str,
        fn: Callable[[], Awaitable[T]],
        *,
        fallback: Callable[[], Awaitable[T]] | None = None,
        on_failure: OnFailure | None = None,
    ) -> T:
        """Run ``fn`` with retries inside the breaker registered for ``name``.

        Args:
            name: Resource name; selects (or lazily creates) the breaker.
            fn: Zero-argument async operation to protect.
            fallback: Degraded-path operation tried once the protected call has
                failed. Its value is returned in place of the failure.
            on_failure: Notification hook called with the original error when
                the call fails and no fallback value is available. Awaited
                when it returns an awaitable; its result is ignored.

        Returns:
            The value of ``fn``, or the value of ``fallback`` when ``fn``
            failed and the fallback succeeded.

        Raises:
            CircuitBreakerError: The breaker rejected the call.
            RetryError: Every attempt failed.
        """
        breaker = self._registry.get_or_create(name)

        def _on_retry(attempt: int, error: BaseException) -> None:
            log_warning(
                self._logger,
                "resilient_call.retry",
                resource=name,
                attempt=attempt,
                error=repr(error),
            )

        async def _attempt() -> T:
            return await retry_with_backoff(
                fn,
                self._retry_policy,
                on_retry=_on_retry,
                sleep=self._sleep,
            )

        try:
            return await breaker.execute(_attempt)
        except Exception as exc:
            log_error(
                self._logger,
                "resilient_call.failed",
                resource=name,
                error_type=type(exc).__name__,
                error=str(exc),
                breaker_state=str(breaker.get_state()),
            )
            if fallback is not None:
                try:
                    value = await fallback()
                except Exception as fallback_exc:
                    log_error(
                        self._logger,
                        "resilient_call.fallback_failed",
                        resource=name,
                        error_type=type(fallback_exc).__name__,
                        error=str(fallback_exc),
                    )
                else:
                    log_info(
                        self._logger,
                        "resilient_call.fallback_succeeded",
                        resource=name,
                    )
                    return value
            if on_failure is not None:
                await self._notify_failure(name, on_failure, exc)
            raise

    async def _notify_failure(
        self,
        name: str,
        on_failure: OnFailure,
        error: Exception,
    ) -> None:
        try:
            result = on_failure(error)
            if inspect.isawaitable(result):
                await result
        except Exception as hook_exc:
            log_error(
                self._logger,
                "resilient_call.on_failure_hook_failed",
                resource=name,
                error_type=type(hook_exc).__name__,
                error=str(hook_exc),
            )


_DEFAULT_CALLER = ResilientCaller()


def get_default_caller() -> ResilientCaller:
    """Return the process-wide caller used by the module-level helpers."""
    return _DEFAULT_CALLER


def configure_default_caller(settings: ResilienceSettings) -> ResilientCaller:
    """Apply ``settings`` process-wide.

    Configures logging from ``log_level`` and ``service_name``, then replaces the
    process-wide caller. Existing breakers are discarded.
    """
    global _DEFAULT_CALLER
    configure_structlog(
        log_level=settings.log_level,
        service_name=settings.service_name,
    )
    _DEFAULT_CALLER = ResilientCaller.from_settings(settings)
    return _DEFAULT_CALLER


async def call_resilient(
    name: str,
    fn: Callable[[], Awaitable[T]],
    *,
    fallback: Callable[[], Awaitable[T]] | None = None,
    on_failure: OnFailure | None = None,
) -> T:
    """``ResilientCaller.call`` on the process-wide caller."""
    return await _DEFAULT_CALLER.call(
        name,
        fn,
        fallback=fallback,
        on_failure=on_failure,
    )


async def reset_circuit_breaker(name: str) -> bool:
    """Reset the process-wide breaker for ``name`` for manual recovery."""
    return await _DEFAULT_CALLER.reset(name)


def clear_all_circuit_breakers() -> None:
    """Drop every process-wide breaker. Intended for deterministic tests."""
    _DEFAULT_CALLER.clear()
