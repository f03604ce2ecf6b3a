"""Circuit breaker exceptions.

Callers can distinguish between:
  - A call being rejected because the circuit is open.
  - The real upstream failure, which the breaker re-raises unchanged.
"""

from datetime import datetime


class CircuitBreakerError(Exception):
    """Base exception for the circuit breaker package."""


class CircuitOpenError(CircuitBreakerError):
    """Raised when a call is rejected because the circuit is open.

    Attributes:
        breaker_name: Name of the breaker rejecting the call.
        next_attempt_at: Earliest time a half-open probe may be attempted.
        retry_after: Seconds until ``next_attempt_at``.
        last_error_message: Message of the failure that kept the circuit open.
    """

    def __init__(
        self,
        breaker_name: str,
        *,
        next_attempt_at: datetime,
        retry_after: float,
        last_error_message: str | None,
    ) -> None:
        """Initialize a circuit-open exception payload.

        Args:
            breaker_name: Breaker rejecting the call.
            next_attempt_at: Absolute time the next probe window opens.
            retry_after: Seconds until the next probe window opens.
            last_error_message: Most recent recorded failure message.
        """
        self.breaker_name = breaker_name
        self.next_attempt_at = next_attempt_at
        self.retry_after = retry_after
        self.last_error_message = last_error_message
        last_error = "unknown" if last_error_message is None else last_error_message
        super().__init__(
            f"circuit_open: {breaker_name} last_error={last_error} "
            f"next_attempt_at={next_attempt_at.isoformat()}"
        )
