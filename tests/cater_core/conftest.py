from __future__ import annotations

import pytest

import cater_core.circuit_breaker.breaker as breaker_mod
from tests.cater_core.support.fakes import FakeClock, FakeLogger, FakeSleep


@pytest.fixture
def fake_logger() -> FakeLogger:
    """Provide a fresh structured logger test double per test."""
    return FakeLogger()


@pytest.fixture
def fake_sleep() -> FakeSleep:
    """Provide a sleep double that records backoff delays."""
    return FakeSleep()


@pytest.fixture
def fake_clock(monkeypatch: pytest.MonkeyPatch) -> FakeClock:
    """Freeze the breaker clock; advance it explicitly from the test."""
    clock = FakeClock()
    monkeypatch.setattr(breaker_mod, "_utcnow", clock.now)
    return clock
