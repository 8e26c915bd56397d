"""Named lookup of shared circuit breakers."""

import threading
from collections.abc import Sequence

from jet_resilience.circuit_breaker.breaker import CircuitBreaker, CircuitBreakerConfig
from jet_resilience.circuit_breaker.listeners import BreakerListener
from jet_resilience.circuit_breaker.state import (
    CircuitBreakerStatistics,
    CircuitState,
)
from jet_resilience.logging import BreakerLogger, get_logger, log_info, log_warning


class CircuitBreakerRegistry:
    """Registry handing out one shared breaker per dependency name.

    Construct one per process (or per test) and pass it to the call sites
    that need it. Breakers live until removed.
    """

    def __init__(
        self,
        *,
        listeners: Sequence[BreakerListener] | None = None,
        logger: BreakerLogger | None = None,
    ) -> None:
        """Create an empty registry.

        Args:
            listeners: Listener hooks attached to every breaker created here.
            logger: Structured logger shared with created breakers.
        """
        self._breakers: dict[str, CircuitBreaker] = {}
        self._lock = threading.Lock()
        self._listeners = tuple(listeners) if listeners is not None else ()
        self._logger = get_logger(__name__) if logger is None else logger

    def __len__(self) -> int:
        with self._lock:
            return len(self._breakers)

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._breakers

    def breaker(
        self,
        name: str,
        config: CircuitBreakerConfig | None = None,
    ) -> CircuitBreaker:
        """Return the breaker for ``name``, creating it on first request.

        The first registration of a name fixes its configuration. A later
        call with a different ``config`` gets the existing breaker and the
        mismatch is logged.
        """
        with self._lock:
            existing = self._breakers.get(name)
            if existing is not None:
                if config is not None and config != existing.config:
                    log_warning(
                        self._logger,
                        "circuit_breaker.config_ignored",
                        breaker=name,
                    )
                return existing

            created = CircuitBreaker(
                name,
                config=config,
                listeners=self._listeners,
                logger=self._logger,
            )
            self._breakers[name] = created
            log_info(self._logger, "circuit_breaker.registered", breaker=name)
            return created

    def get(self, name: str) -> CircuitBreaker | None:
        """Return the breaker for ``name`` without creating one."""
        with self._lock:
            return self._breakers.get(name)

    def remove(self, name: str) -> bool:
        """Forget ``name``. Returns whether a breaker was registered."""
        with self._lock:
            return self._breakers.pop(name, None) is not None

    def names(self) -> list[str]:
        with self._lock:
            return sorted(self._breakers)

    def _snapshot(self) -> list[CircuitBreaker]:
        with self._lock:
            return list(self._breakers.values())

    def reset_all(self) -> None:
        """Reset every registered breaker to ``CLOSED``."""
        for breaker in self._snapshot():
            breaker.reset()

    def all_statistics(self) -> list[CircuitBreakerStatistics]:
        return [breaker.statistics() for breaker in self._snapshot()]

    def unhealthy_breakers(self) -> list[CircuitBreaker]:
        """Return every breaker that is not ``CLOSED``."""
        return [
            breaker
            for breaker in self._snapshot()
            if breaker.state != CircuitState.CLOSED
        ]
