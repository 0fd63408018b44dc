import threading

import pytest

from cater_core.circuit_breaker import (
    BreakerRegistry,
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitState,
)

pytestmark = pytest.mark.asyncio


async def test_get_or_create_builds_default_breaker_once() -> None:
    registry = BreakerRegistry()

    first = registry.get_or_create("whatsapp")
    second = registry.get_or_create("whatsapp")

    assert first is second
    assert first.name == "whatsapp"
    assert first.config == CircuitBreakerConfig()
    assert "whatsapp" in registry
    assert len(registry) == 1


async def test_names_are_independent() -> None:
    registry = BreakerRegistry()
    await registry.get_or_create("whatsapp").force_open()

    assert registry.get_or_create("whatsapp").get_state() == CircuitState.OPEN
    assert registry.get_or_create("backend").get_state() == CircuitState.CLOSED
    assert registry.names() == ("whatsapp", "backend")


async def test_factory_runs_only_for_new_names() -> None:
    built: list[str] = []

    def _factory(name: str) -> CircuitBreaker:
        built.append(name)
        return CircuitBreaker(
            name,
            config=CircuitBreakerConfig(failure_threshold=1),
            listeners=[],
        )

    registry = BreakerRegistry(_factory)
    registry.get_or_create("gmail")
    registry.get_or_create("gmail")
    registry.get_or_create("sheets")

    assert built == ["gmail", "sheets"]
    assert registry.get_or_create("gmail").config.failure_threshold == 1


async def test_get_does_not_create() -> None:
    registry = BreakerRegistry()

    assert registry.get("missing") is None
    assert "missing" not in registry


async def test_reset_known_and_unknown_names() -> None:
    registry = BreakerRegistry()
    breaker = registry.get_or_create("whatsapp")
    await breaker.force_open()

    assert await registry.reset("whatsapp") is True
    assert breaker.get_state() == CircuitState.CLOSED
    assert await registry.reset("unknown") is False


async def test_clear_drops_breakers() -> None:
    registry = BreakerRegistry()
    old = registry.get_or_create("whatsapp")

    registry.clear()

    assert len(registry) == 0
    assert registry.get_or_create("whatsapp") is not old


async def test_get_or_create_is_atomic_across_threads() -> None:
    built: list[str] = []
    barrier = threading.Barrier(8)

    def _factory(name: str) -> CircuitBreaker:
        built.append(name)
        return CircuitBreaker(name, listeners=[])

    registry = BreakerRegistry(_factory)
    results: list[CircuitBreaker] = []

    def _worker() -> None:
        barrier.wait()
        results.append(registry.get_or_create("backend"))

    threads = [threading.Thread(target=_worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert built == ["backend"]
    assert len({id(breaker) for breaker in results}) == 1
