"""Framework-agnostic async circuit breaker.

This package implements the circuit breaker pattern from *Release It!*.

Key behavior notes:
  - State lives in the breaker instance only. Nothing survives a restart.
  - ``HALF_OPEN`` admits calls until ``success_threshold`` consecutive
    successes close the circuit; any failure while ``HALF_OPEN`` re-opens it
    and discards the partial progress.
  - If an excluded exception is raised, the call is treated as if it never
    happened: counters, state and listeners are untouched.
"""

from rtt_bridge.circuit_breaker.breaker import CircuitBreaker, CircuitBreakerConfig
from rtt_bridge.circuit_breaker.exceptions import (
    CircuitBreakerError,
    CircuitOpenError,
)
from rtt_bridge.circuit_breaker.metrics import BreakerListener, LoggingBreakerListener
from rtt_bridge.circuit_breaker.state import BreakerSnapshot, CircuitState

__all__ = [
    "BreakerListener",
    "BreakerSnapshot",
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerError",
    "CircuitOpenError",
    "CircuitState",
    "LoggingBreakerListener",
]
