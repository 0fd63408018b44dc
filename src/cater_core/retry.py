from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

import tenacity
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from cater_core.errors import RetryError
from cater_core.logging import log_warning

T = TypeVar("T")
OnRetry = Callable[[int, BaseException], None]

_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    """Configuration for retry attempt count and backoff boundaries.

    Delays are in seconds. ``max_retries`` counts retries, so an operation is
    invoked at most ``max_retries + 1`` times. An ``initial_delay`` above
    ``max_delay`` is valid and every wait is capped at ``max_delay``.
    """

    max_retries: int = 3
    initial_delay: float = 1.0
    max_delay: float = 30.0
    backoff_multiplier: float = 2.0
    retry_on: tuple[type[BaseException], ...] = (Exception,)

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.initial_delay < 0:
            raise ValueError("initial_delay must be >= 0")
        if self.max_delay < 0:
            raise ValueError("max_delay must be >= 0")
        if self.backoff_multiplier < 1:
            raise ValueError("backoff_multiplier must be >= 1")

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def wait(self) -> wait_exponential:
        """Return the tenacity wait: ``initial * multiplier**(n - 1)``, capped."""
        # Float base keeps huge exponents on the OverflowError path tenacity caps.
        return wait_exponential(
            multiplier=self.initial_delay,
            max=self.max_delay,
            exp_base=float(self.backoff_multiplier),
        )

    def delay_for(self, attempt_index: int) -> float:
        """Return the backoff delay after the zero-based ``attempt_index``."""
        state = RetryCallState(None, None, (), {})  # type: ignore[arg-type]
        state.attempt_number = attempt_index + 1
        return float(self.wait()(state))


def build_exponential_retrying(
    policy: RetryPolicy,
    *,
    sleep: Callable[[float], Awaitable[None]] | None = None,
    before_sleep: Callable[[RetryCallState], None] | None = None,
) -> AsyncRetrying:
    """Build an ``AsyncRetrying`` with capped exponential backoff and no jitter."""
    options: dict[str, object] = {}
    if sleep is not None:
        options["sleep"] = sleep
    if before_sleep is not None:
        options["before_sleep"] = before_sleep
    return AsyncRetrying(
        retry=retry_if_exception_type(policy.retry_on),
        wait=policy.wait(),
        stop=stop_after_attempt(policy.max_attempts),
        reraise=False,
        **options,
    )


async def retry_with_backoff(
    fn: Callable[[], Awaitable[T]],
    policy: RetryPolicy | None = None,
    *,
    on_retry: OnRetry | None = None,
    sleep: Callable[[float], Awaitable[None]] | None = None,
) -> T:
    """Run ``fn`` until it succeeds or the retry budget is spent.

    Args:
        fn: Zero-argument async callable to invoke.
        policy: Retry configuration. Defaults to ``RetryPolicy()``.
        on_retry: Called with the 1-based number of the failed attempt and its
            error, synchronously, before each backoff sleep.
        sleep: Async sleep used between attempts. Defaults to ``asyncio.sleep``.

    Returns:
        The first successful result of ``fn``.

    Raises:
        RetryError: When every attempt failed with a retryable error.
        BaseException: Any error outside ``policy.retry_on``, unwrapped, as soon
            as it is raised.
    """
    policy = RetryPolicy() if policy is None else policy
    errors: list[BaseException] = []

    def _before_sleep(state: RetryCallState) -> None:
        error = errors[-1]
        log_warning(
            _logger,
            "retry.attempt_failed",
            attempt=state.attempt_number,
            max_attempts=policy.max_attempts,
            delay=state.upcoming_sleep,
            error=repr(error),
        )
        if on_retry is not None:
            on_retry(state.attempt_number, error)

    retrying = build_exponential_retrying(
        policy,
        sleep=sleep,
        before_sleep=_before_sleep,
    )
    try:
        async for attempt in retrying:
            with attempt:
                try:
                    return await fn()
                except policy.retry_on as exc:
                    errors.append(exc)
                    raise
    except tenacity.RetryError as exc:
        last_error = exc.last_attempt.exception()
        if last_error is None:
            raise
        raise RetryError(
            exc.last_attempt.attempt_number,
            last_error,
            tuple(errors),
        ) from last_error
    raise AssertionError("unreachable: retrying loop exited without outcome")
