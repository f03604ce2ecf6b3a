"""Observability hooks for circuit breakers."""

from typing import Protocol

from rtt_bridge.circuit_breaker.state import CircuitState
from rtt_bridge.logging import (
    AnyLogger,
    get_logger,
    log_debug,
    log_error,
    log_info,
    log_warning,
)


class BreakerListener(Protocol):
    """Listener protocol for circuit breaker events.

    Notes:
        Hooks run synchronously while the breaker applies the outcome, so they
        must not block. Exceptions raised by a hook are discarded.
    """

    def on_state_change(
        self, name: str, old: CircuitState, new: CircuitState
    ) -> None:
        """Handle circuit state transitions."""

    def on_call_rejected(self, name: str) -> None:
        """Handle call rejection while the circuit is open."""

    def on_call_succeeded(self, name: str, elapsed: float) -> None:
        """Handle successful protected call completion."""

    def on_call_failed(self, name: str, exc: Exception, elapsed: float) -> None:
        """Handle failed protected call completion."""


class LoggingBreakerListener:
    """Publish breaker events to a structured logger."""

    def __init__(self, logger: AnyLogger | None = None) -> None:
        self._logger = get_logger(__name__) if logger is None else logger

    def on_state_change(
        self, name: str, old: CircuitState, new: CircuitState
    ) -> None:
        if new == CircuitState.OPEN:
            log_error(
                self._logger,
                "circuit_breaker.opened",
                breaker=name,
                previous_state=str(old),
            )
        elif new == CircuitState.CLOSED:
            log_info(
                self._logger,
                "circuit_breaker.closed",
                breaker=name,
                previous_state=str(old),
            )
        else:
            log_info(
                self._logger,
                "circuit_breaker.state_changed",
                breaker=name,
                previous_state=str(old),
                state=str(new),
            )

    def on_call_rejected(self, name: str) -> None:
        log_warning(self._logger, "circuit_breaker.call_rejected", breaker=name)

    def on_call_succeeded(self, name: str, elapsed: float) -> None:
        log_debug(
            self._logger,
            "circuit_breaker.call_succeeded",
            breaker=name,
            elapsed_seconds=round(elapsed, 3),
        )

    def on_call_failed(self, name: str, exc: Exception, elapsed: float) -> None:
        log_debug(
            self._logger,
            "circuit_breaker.call_failed",
            breaker=name,
            error=str(exc),
            error_type=exc.__class__.__name__,
            elapsed_seconds=round(elapsed, 3),
        )
