"""Core circuit breaker implementation."""

import functools
import inspect
import threading
import time
from collections import deque
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import ParamSpec, TypeVar, cast

from jet_resilience.circuit_breaker.exceptions import (
    CircuitOpenError,
    ExecutionFailedError,
)
from jet_resilience.circuit_breaker.listeners import BreakerListener
from jet_resilience.circuit_breaker.state import (
    CircuitBreakerStatistics,
    CircuitState,
)
from jet_resilience.logging import (
    BreakerLogger,
    get_logger,
    log_exception,
    log_info,
    log_warning,
)

T = TypeVar("T")
P = ParamSpec("P")


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _is_async_callable(func: object) -> bool:
    while isinstance(func, functools.partial):
        func = func.func
    return inspect.iscoroutinefunction(func) or inspect.iscoroutinefunction(
        getattr(func, "__call__", None)
    )


@dataclass(frozen=True, slots=True)
class CircuitBreakerConfig:
    """Circuit breaker configuration values.

    Attributes:
        failure_threshold: Failures inside ``failure_window`` that open the
            circuit while ``CLOSED``.
        recovery_timeout: Seconds to stay ``OPEN`` before allowing a probe.
        success_threshold: Consecutive ``HALF_OPEN`` successes that close it.
        failure_window: Seconds a recorded failure keeps counting.
        excluded_exceptions: Exceptions that are neither successes nor
            failures. They propagate unwrapped.
    """

    failure_threshold: int = 5
    recovery_timeout: float = 30.0
    success_threshold: int = 2
    failure_window: float = 60.0
    excluded_exceptions: tuple[type[Exception], ...] = ()

    def __post_init__(self) -> None:
        if self.failure_threshold < 1:
            raise ValueError("failure_threshold must be >= 1")
        if self.recovery_timeout <= 0:
            raise ValueError("recovery_timeout must be > 0")
        if self.success_threshold < 1:
            raise ValueError("success_threshold must be >= 1")
        if self.failure_window <= 0:
            raise ValueError("failure_window must be > 0")

    @classmethod
    def default(cls) -> "CircuitBreakerConfig":
        return cls()

    @classmethod
    def aggressive(cls) -> "CircuitBreakerConfig":
        """Trip fast and probe early, for critical dependencies."""
        return cls(
            failure_threshold=3,
            recovery_timeout=15.0,
            success_threshold=1,
            failure_window=30.0,
        )

    @classmethod
    def lenient(cls) -> "CircuitBreakerConfig":
        """Tolerate more noise, for non-critical dependencies."""
        return cls(
            failure_threshold=10,
            recovery_timeout=60.0,
            success_threshold=3,
            failure_window=120.0,
        )


class CircuitBreaker:
    """Stateful proxy around a dangerous sync or async operation.

    All bookkeeping runs under one re-entrant lock per instance, so concurrent
    threads and tasks never interleave their state updates. The lock is never
    held while the protected operation runs.
    """

    def __init__(
        self,
        name: str,
        *,
        config: CircuitBreakerConfig | None = None,
        listeners: Sequence[BreakerListener] | None = None,
        logger: BreakerLogger | None = None,
    ) -> None:
        """Build a circuit breaker with optional custom dependencies.

        Args:
            name: Breaker name used in registries, logs and rejection errors.
            config: Breaker behavior configuration. Defaults to
                ``CircuitBreakerConfig.default()``.
            listeners: Optional listener hooks for breaker events.
            logger: Structured logger. Defaults to this module's structlog
                logger.

        Raises:
            ValueError: If ``name`` is empty or blank.
        """
        if not name.strip():
            raise ValueError("name must be non-empty")
        self.name = name
        self.config = CircuitBreakerConfig.default() if config is None else config
        self._listeners = tuple(listeners) if listeners is not None else ()
        self._logger = get_logger(__name__) if logger is None else logger
        self._lock = threading.RLock()

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._failure_timestamps: deque[datetime] = deque()
        self._last_failure_at: datetime | None = None
        self._last_state_change_at = _utcnow()

    def __repr__(self) -> str:
        return f"CircuitBreaker(name={self.name!r}, state={self.state.value!r})"

    @property
    def state(self) -> CircuitState:
        with self._lock:
            return self._state

    def _emit_log(self, message: str) -> None:
        for listener in self._listeners:
            try:
                listener.on_log(self.name, message)
            except Exception:
                self._listener_failed("on_log")

    def _emit_state_change(self, old: CircuitState, new: CircuitState) -> None:
        for listener in self._listeners:
            try:
                listener.on_state_change(self.name, old, new)
            except Exception:
                self._listener_failed("on_state_change")

    def _emit_call_rejected(self) -> None:
        for listener in self._listeners:
            try:
                listener.on_call_rejected(self.name)
            except Exception:
                self._listener_failed("on_call_rejected")

    def _emit_call_succeeded(self, elapsed: float) -> None:
        for listener in self._listeners:
            try:
                listener.on_call_succeeded(self.name, elapsed)
            except Exception:
                self._listener_failed("on_call_succeeded")

    def _emit_call_failed(self, exc: Exception, elapsed: float) -> None:
        for listener in self._listeners:
            try:
                listener.on_call_failed(self.name, exc, elapsed)
            except Exception:
                self._listener_failed("on_call_failed")

    def _listener_failed(self, hook: str) -> None:
        log_exception(
            self._logger,
            "circuit_breaker.listener_failed",
            breaker=self.name,
            hook=hook,
        )

    def _retry_after(self, now: datetime) -> float:
        elapsed = (now - self._last_state_change_at).total_seconds()
        return max(self.config.recovery_timeout - elapsed, 0.0)

    def _prune_failures(self, now: datetime) -> None:
        cutoff = now - timedelta(seconds=self.config.failure_window)
        while self._failure_timestamps and self._failure_timestamps[0] <= cutoff:
            self._failure_timestamps.popleft()

    def _transition_to(self, new_state: CircuitState, now: datetime) -> None:
        old_state = self._state
        if old_state == new_state:
            return

        self._state = new_state
        self._last_state_change_at = now
        self._success_count = 0
        if new_state == CircuitState.CLOSED:
            self._failure_count = 0
            self._failure_timestamps.clear()

        log_info(
            self._logger,
            "circuit_breaker.state_changed",
            breaker=self.name,
            old_state=old_state.value,
            new_state=new_state.value,
        )
        self._emit_log(
            f"[CircuitBreaker:{self.name}] State: {old_state.value} -> "
            f"{new_state.value}"
        )
        self._emit_state_change(old_state, new_state)

    def _admit(self) -> float | None:
        """Return ``None`` when a call may run, else seconds until retry.

        An ``OPEN`` breaker whose recovery timeout elapsed moves to
        ``HALF_OPEN`` here, as a side effect of the check.
        """
        with self._lock:
            if self._state != CircuitState.OPEN:
                return None
            now = _utcnow()
            retry_after = self._retry_after(now)
            if retry_after > 0:
                return retry_after
            self._transition_to(CircuitState.HALF_OPEN, now)
            return None

    def _check_admission(self) -> None:
        with self._lock:
            retry_after = self._admit()
            if retry_after is None:
                return
            log_info(
                self._logger,
                "circuit_breaker.call_rejected",
                breaker=self.name,
                retry_after=retry_after,
            )
            self._emit_log(
                f"[CircuitBreaker:{self.name}] Circuit OPEN - blocking request"
            )
            self._emit_call_rejected()
        raise CircuitOpenError(self.name, retry_after=retry_after)

    def _failed(self, exc: Exception, start: float) -> ExecutionFailedError:
        self._record_failure(exc, max(time.monotonic() - start, 0.0))
        return ExecutionFailedError(self.name, exc)

    def _record_success(self, elapsed: float) -> None:
        with self._lock:
            if self._state == CircuitState.HALF_OPEN:
                self._success_count += 1
                if self._success_count >= self.config.success_threshold:
                    self._emit_log(
                        f"[CircuitBreaker:{self.name}] Recovery successful - "
                        "closing circuit"
                    )
                    self._transition_to(CircuitState.CLOSED, _utcnow())
            elif self._state == CircuitState.CLOSED:
                self._success_count += 1
                # Lifetime counter decays; the failure window only shrinks by pruning.
                if self._failure_count > 0:
                    self._failure_count -= 1
            self._emit_call_succeeded(elapsed)

    def _record_failure(self, exc: Exception, elapsed: float) -> None:
        with self._lock:
            now = _utcnow()
            self._failure_count += 1
            self._last_failure_at = now
            self._failure_timestamps.append(now)
            self._prune_failures(now)
            self._emit_call_failed(exc, elapsed)

            if self._state == CircuitState.CLOSED:
                recent = len(self._failure_timestamps)
                if recent >= self.config.failure_threshold:
                    log_warning(
                        self._logger,
                        "circuit_breaker.threshold_reached",
                        breaker=self.name,
                        recent_failures=recent,
                        failure_threshold=self.config.failure_threshold,
                    )
                    self._emit_log(
                        f"[CircuitBreaker:{self.name}] Failure threshold reached "
                        f"({recent}/{self.config.failure_threshold}) - opening circuit"
                    )
                    self._transition_to(CircuitState.OPEN, now)
            elif self._state == CircuitState.HALF_OPEN:
                self._emit_log(
                    f"[CircuitBreaker:{self.name}] Failure in half-open state - "
                    "reopening circuit"
                )
                self._transition_to(CircuitState.OPEN, now)

    def can_execute(self) -> bool:
        """Return whether a call would currently be allowed through.

        May move an ``OPEN`` breaker to ``HALF_OPEN`` once its recovery
        timeout has elapsed.
        """
        return self._admit() is None

    async def execute(
        self,
        func: Callable[P, Awaitable[T]],
        *args: P.args,
        **kwargs: P.kwargs,
    ) -> T:
        """Invoke an async callable under circuit breaker protection.

        Args:
            func: Dangerous async callable to execute.
            *args: Positional arguments forwarded to ``func``.
            **kwargs: Keyword arguments forwarded to ``func``.

        Returns:
            The result of ``func`` when allowed and successful.

        Raises:
            CircuitOpenError: When the circuit is open and the call is rejected.
            ExecutionFailedError: When ``func`` is attempted and fails. The
                original exception is chained as ``__cause__``.
            TypeError: When ``func`` does not return an awaitable. Nothing is
                recorded.
            Exception: Excluded exceptions from ``func``, unwrapped.
        """
        self._check_admission()
        start = time.monotonic()
        try:
            pending = func(*args, **kwargs)
        except self.config.excluded_exceptions:
            raise
        except Exception as exc:
            raise self._failed(exc, start) from exc

        if not inspect.isawaitable(pending):
            raise TypeError(
                f"circuit breaker {self.name!r}: {func!r} returned "
                f"{type(pending).__name__}, not an awaitable; use execute_sync"
            )

        try:
            result = await pending
        except self.config.excluded_exceptions:
            raise
        except Exception as exc:
            raise self._failed(exc, start) from exc
        self._record_success(max(time.monotonic() - start, 0.0))
        return result

    def execute_sync(
        self,
        func: Callable[P, T],
        *args: P.args,
        **kwargs: P.kwargs,
    ) -> T:
        """Invoke a blocking callable under circuit breaker protection.

        Same decision logic and errors as :meth:`execute`. A callable that
        returns an awaitable is rejected with ``TypeError`` and nothing is
        recorded, since its work would run outside the breaker.
        """
        self._check_admission()
        start = time.monotonic()
        try:
            result = func(*args, **kwargs)
        except self.config.excluded_exceptions:
            raise
        except Exception as exc:
            raise self._failed(exc, start) from exc

        if inspect.isawaitable(result):
            if inspect.iscoroutine(result):
                result.close()
            raise TypeError(
                f"circuit breaker {self.name!r}: {func!r} returned an awaitable; "
                "use execute"
            )
        self._record_success(max(time.monotonic() - start, 0.0))
        return result

    def protect(self, func: Callable[P, T]) -> Callable[P, T]:
        """Decorate ``func`` so each call runs through this breaker.

        Coroutine functions and objects with an async ``__call__`` are routed
        through :meth:`execute`, everything else through :meth:`execute_sync`.
        """
        if _is_async_callable(func):
            async_func = cast(Callable[P, Awaitable[object]], func)

            @functools.wraps(func)
            async def _async_wrapper(*args: P.args, **kwargs: P.kwargs) -> object:
                return await self.execute(async_func, *args, **kwargs)

            return cast(Callable[P, T], _async_wrapper)

        @functools.wraps(func)
        def _sync_wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            return self.execute_sync(func, *args, **kwargs)

        return _sync_wrapper

    def reset(self) -> None:
        """Clear every counter and force the circuit ``CLOSED``."""
        with self._lock:
            log_info(self._logger, "circuit_breaker.reset", breaker=self.name)
            self._emit_log(f"[CircuitBreaker:{self.name}] Manual reset")
            self._failure_count = 0
            self._success_count = 0
            self._failure_timestamps.clear()
            self._last_failure_at = None
            self._transition_to(CircuitState.CLOSED, _utcnow())

    def force_open(self) -> None:
        """Force the circuit ``OPEN``, for example during maintenance."""
        with self._lock:
            log_warning(self._logger, "circuit_breaker.forced_open", breaker=self.name)
            self._emit_log(f"[CircuitBreaker:{self.name}] Forced OPEN")
            self._transition_to(CircuitState.OPEN, _utcnow())

    def statistics(self) -> CircuitBreakerStatistics:
        """Prune the failure window and return an immutable snapshot."""
        with self._lock:
            now = _utcnow()
            self._prune_failures(now)
            time_until_retry = (
                self._retry_after(now) if self._state == CircuitState.OPEN else None
            )
            return CircuitBreakerStatistics(
                name=self.name,
                state=self._state,
                failure_count=self._failure_count,
                success_count=self._success_count,
                recent_failures=len(self._failure_timestamps),
                last_failure_at=self._last_failure_at,
                last_state_change_at=self._last_state_change_at,
                time_until_retry=time_until_retry,
            )
