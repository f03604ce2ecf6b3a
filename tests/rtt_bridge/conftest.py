from __future__ import annotations

import pytest

import rtt_bridge.circuit_breaker.breaker as breaker_mod
from rtt_bridge.resilient import ResilientClientRegistry
from tests.rtt_bridge.support.fakes import FakeClock, FakeLogger, RecordingSleep


@pytest.fixture
def fake_logger() -> FakeLogger:
    """Provide a fresh structured logger test double per test."""
    return FakeLogger()


@pytest.fixture
def fake_clock(monkeypatch: pytest.MonkeyPatch) -> FakeClock:
    """Drive breaker cooldowns from a manually advanced clock."""
    clock = FakeClock()
    monkeypatch.setattr(breaker_mod, "_utcnow", clock.now)
    return clock


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    """Provide a retry sleep that returns immediately and records delays."""
    return RecordingSleep()


@pytest.fixture
def registry() -> ResilientClientRegistry:
    """Provide an isolated resilient client registry per test."""
    return ResilientClientRegistry()
