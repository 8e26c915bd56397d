"""Circuit breaker exceptions.

Callers can distinguish between:
  - A call being rejected because the circuit is open.
  - A call that was attempted and failed inside the protected operation.
"""


class CircuitBreakerError(Exception):
    """Base exception for the circuit breaker package."""


class CircuitOpenError(CircuitBreakerError):
    """Raised when a call is rejected because the circuit is open.

    Attributes:
        breaker_name: Name of the breaker rejecting the call.
        retry_after: Seconds until a half-open probe may be attempted.
    """

    def __init__(self, breaker_name: str, retry_after: float) -> None:
        """Initialize a circuit-open exception payload.

        Args:
            breaker_name: Breaker rejecting the call.
            retry_after: Seconds until the next probe window opens.
        """
        self.breaker_name = breaker_name
        self.retry_after = retry_after
        super().__init__(f"circuit_open: {breaker_name} retry_after={retry_after:g}s")


class ExecutionFailedError(CircuitBreakerError):
    """Raised when the protected operation itself failed.

    The original exception is kept on ``underlying`` and chained as
    ``__cause__``.
    """

    def __init__(self, breaker_name: str, underlying: Exception) -> None:
        self.breaker_name = breaker_name
        self.underlying = underlying
        super().__init__(
            f"execution_failed: {breaker_name} "
            f"{underlying.__class__.__name__}: {underlying}"
        )
