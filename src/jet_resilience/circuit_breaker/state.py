"""Circuit breaker state primitives."""

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum


class CircuitState(StrEnum):
    """Circuit breaker state values."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass(frozen=True)
class CircuitBreakerStatistics:
    """Point-in-time view of breaker internals useful for metrics/logging.

    Attributes:
        name: Breaker name.
        state: Breaker state when the snapshot was taken.
        failure_count: Lifetime failure counter. Decays by one per success
            while ``CLOSED`` and resets on every transition to ``CLOSED``.
        success_count: Consecutive successes since the last transition.
        recent_failures: Failures still inside the failure window. Only this
            value drives the ``CLOSED`` to ``OPEN`` transition.
        last_failure_at: Timestamp of the last recorded failure, if any.
        last_state_change_at: Timestamp of the most recent transition.
        time_until_retry: Seconds until a probe is allowed, only while ``OPEN``.
    """

    name: str
    state: CircuitState
    failure_count: int
    success_count: int
    recent_failures: int
    last_failure_at: datetime | None
    last_state_change_at: datetime
    time_until_retry: float | None

    @property
    def is_healthy(self) -> bool:
        return self.state == CircuitState.CLOSED

    def describe(self) -> str:
        """Render a one-line human readable summary."""
        text = (
            f"[{self.name}] state={self.state.value} "
            f"failures={self.failure_count} recent={self.recent_failures}"
        )
        if self.time_until_retry is not None:
            text += f" retry_in={int(self.time_until_retry)}s"
        return text
