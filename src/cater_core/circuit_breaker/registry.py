"""Process-wide registry of named circuit breakers."""

import threading
from collections.abc import Callable

from cater_core.circuit_breaker.breaker import CircuitBreaker

BreakerFactory = Callable[[str], CircuitBreaker]


class BreakerRegistry:
    """Map resource names to breakers, constructing each on first use.

    The factory only runs for a name that has no breaker yet; later lookups
    return the cached instance whatever configuration the caller had in mind.
    Entries live until ``clear()``.
    """

    def __init__(self, factory: BreakerFactory | None = None) -> None:
        self._factory: BreakerFactory = CircuitBreaker if factory is None else factory
        self._breakers: dict[str, CircuitBreaker] = {}
        self._lock = threading.Lock()

    def get_or_create(self, name: str) -> CircuitBreaker:
        """Return the breaker for ``name``, creating it atomically if missing."""
        breaker = self._breakers.get(name)
        if breaker is not None:
            return breaker
        with self._lock:
            breaker = self._breakers.get(name)
            if breaker is None:
                breaker = self._factory(name)
                self._breakers[name] = breaker
            return breaker

    def get(self, name: str) -> CircuitBreaker | None:
        return self._breakers.get(name)

    def names(self) -> tuple[str, ...]:
        with self._lock:
            return tuple(self._breakers)

    async def reset(self, name: str) -> bool:
        """Reset the breaker for ``name``. Returns ``False`` when unknown."""
        breaker = self._breakers.get(name)
        if breaker is None:
            return False
        await breaker.reset()
        return True

    def clear(self) -> None:
        """Drop every breaker. Intended for deterministic tests."""
        with self._lock:
            self._breakers.clear()

    def __contains__(self, name: object) -> bool:
        return name in self._breakers

    def __len__(self) -> int:
        return len(self._breakers)
