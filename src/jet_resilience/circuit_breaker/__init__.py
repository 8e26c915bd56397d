"""In-process circuit breaker for sync and async callables.

This package implements the circuit breaker pattern from *Release It!*.

Key behavior notes:
  - Only failures inside ``failure_window`` count toward tripping a ``CLOSED``
    circuit. ``failure_count`` is a decaying lifetime counter reported in
    statistics and never drives a transition.
  - ``OPEN`` becomes ``HALF_OPEN`` lazily, when a caller asks whether it may
    execute after ``recovery_timeout`` has elapsed.
  - A single failure while ``HALF_OPEN`` reopens the circuit;
    ``success_threshold`` consecutive successes close it.
  - State is process-local and in memory. Share breakers between call sites
    through a ``CircuitBreakerRegistry``.
"""

from jet_resilience.circuit_breaker.breaker import CircuitBreaker, CircuitBreakerConfig
from jet_resilience.circuit_breaker.exceptions import (
    CircuitBreakerError,
    CircuitOpenError,
    ExecutionFailedError,
)
from jet_resilience.circuit_breaker.listeners import BreakerListener
from jet_resilience.circuit_breaker.registry import CircuitBreakerRegistry
from jet_resilience.circuit_breaker.state import (
    CircuitBreakerStatistics,
    CircuitState,
)

__all__ = [
    "BreakerListener",
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerError",
    "CircuitBreakerRegistry",
    "CircuitBreakerStatistics",
    "CircuitOpenError",
    "CircuitState",
    "ExecutionFailedError",
]
