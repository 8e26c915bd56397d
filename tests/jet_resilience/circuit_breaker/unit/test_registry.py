from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from jet_resilience.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitBreakerRegistry,
    CircuitState,
    ExecutionFailedError,
)
from tests.jet_resilience.support.fakes import FakeLogger, RecordingListener


def _trip(breaker: CircuitBreaker) -> None:
    def _fail() -> None:
        raise RuntimeError("down")

    for _ in range(breaker.config.failure_threshold):
        with pytest.raises(ExecutionFailedError):
            breaker.execute_sync(_fail)


@pytest.fixture
def registry(fake_logger: FakeLogger) -> CircuitBreakerRegistry:
    return CircuitBreakerRegistry(logger=fake_logger)


def test_breaker_returns_same_instance_for_same_name(
    registry: CircuitBreakerRegistry,
) -> None:
    config = CircuitBreakerConfig.aggressive()

    first = registry.breaker("billing", config)
    second = registry.breaker("billing", config)

    assert first is second
    assert first.config == config
    assert "billing" in registry
    assert len(registry) == 1


def test_first_registration_wins_and_mismatch_is_logged(
    registry: CircuitBreakerRegistry, fake_logger: FakeLogger
) -> None:
    first = registry.breaker("billing", CircuitBreakerConfig.aggressive())
    second = registry.breaker("billing", CircuitBreakerConfig.lenient())
    third = registry.breaker("billing")

    assert first is second is third
    assert first.config == CircuitBreakerConfig.aggressive()
    assert fake_logger.events("warning").count("circuit_breaker.config_ignored") == 1


def test_get_does_not_create(registry: CircuitBreakerRegistry) -> None:
    assert registry.get("missing") is None
    assert len(registry) == 0

    created = registry.breaker("present")
    assert registry.get("present") is created


def test_remove_then_breaker_returns_fresh_instance(
    registry: CircuitBreakerRegistry,
) -> None:
    original = registry.breaker("search", CircuitBreakerConfig(failure_threshold=2))
    _trip(original)
    assert original.state == CircuitState.OPEN

    assert registry.remove("search") is True
    assert registry.remove("search") is False

    fresh = registry.breaker("search", CircuitBreakerConfig(failure_threshold=2))
    stats = fresh.statistics()
    assert fresh is not original
    assert stats.state == CircuitState.CLOSED
    assert stats.failure_count == 0
    assert stats.recent_failures == 0


def test_reset_all_and_unhealthy_breakers(registry: CircuitBreakerRegistry) -> None:
    healthy = registry.breaker("cache")
    tripped = registry.breaker("search", CircuitBreakerConfig(failure_threshold=1))
    forced = registry.breaker("storage")
    _trip(tripped)
    forced.force_open()

    unhealthy = registry.unhealthy_breakers()
    assert {breaker.name for breaker in unhealthy} == {"search", "storage"}
    assert healthy not in unhealthy

    registry.reset_all()

    assert registry.unhealthy_breakers() == []
    assert all(
        breaker.state == CircuitState.CLOSED
        for breaker in (healthy, tripped, forced)
    )


def test_all_statistics_covers_every_breaker(registry: CircuitBreakerRegistry) -> None:
    registry.breaker("a")
    registry.breaker("b").force_open()

    stats = {snapshot.name: snapshot for snapshot in registry.all_statistics()}

    assert set(stats) == {"a", "b"}
    assert stats["a"].state == CircuitState.CLOSED
    assert stats["b"].state == CircuitState.OPEN
    assert registry.names() == ["a", "b"]


def test_registry_listeners_are_attached_to_created_breakers(
    fake_logger: FakeLogger,
) -> None:
    listener = RecordingListener()
    registry = CircuitBreakerRegistry(listeners=[listener], logger=fake_logger)

    registry.breaker("a").force_open()
    registry.breaker("b").force_open()

    assert [payload[0] for kind, payload in listener.events if kind == "state"] == [
        "a",
        "b",
    ]


def test_registries_are_isolated(fake_logger: FakeLogger) -> None:
    left = CircuitBreakerRegistry(logger=fake_logger)
    right = CircuitBreakerRegistry(logger=fake_logger)

    assert left.breaker("shared") is not right.breaker("shared")


def test_concurrent_first_registration_creates_one_breaker(
    registry: CircuitBreakerRegistry,
) -> None:
    start = threading.Barrier(16)

    def _lookup() -> CircuitBreaker:
        start.wait()
        return registry.breaker("contended")

    with ThreadPoolExecutor(max_workers=16) as pool:
        breakers = list(pool.map(lambda _: _lookup(), range(16)))

    assert len({id(breaker) for breaker in breakers}) == 1
    assert len(registry) == 1
