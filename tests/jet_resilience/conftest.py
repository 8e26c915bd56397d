from __future__ import annotations

import pytest

import jet_resilience.circuit_breaker.breaker as breaker_mod
from tests.jet_resilience.support.fakes import FakeClock, FakeLogger


@pytest.fixture
def fake_logger() -> FakeLogger:
    """Provide a fresh structured logger test double per test."""
    return FakeLogger()


@pytest.fixture
def clock(monkeypatch: pytest.MonkeyPatch) -> FakeClock:
    """Pin breaker time to a manually advanced clock."""
    fake = FakeClock()
    monkeypatch.setattr(breaker_mod, "_utcnow", fake.now)
    return fake
