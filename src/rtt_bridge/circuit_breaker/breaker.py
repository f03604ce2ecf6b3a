"""Core circuit breaker implementation."""

import threading
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import ParamSpec, TypeVar

from rtt_bridge.circuit_breaker.exceptions import CircuitOpenError
from rtt_bridge.circuit_breaker.metrics import BreakerListener
from rtt_bridge.circuit_breaker.state import BreakerSnapshot, CircuitState

T = TypeVar("T")
P = ParamSpec("P")


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True, slots=True)
class CircuitBreakerConfig:
    """Circuit breaker configuration values.

    Attributes:
        failure_threshold: Consecutive failures while ``CLOSED`` before opening.
        success_threshold: Consecutive successes while ``HALF_OPEN`` before
            closing.
        cooldown_seconds: Seconds to wait while ``OPEN`` before allowing a probe.
        expected_exceptions: Exceptions that count as failures.
        excluded_exceptions: Exceptions that must not count as failures.
    """

    failure_threshold: int = 5
    success_threshold: int = 2
    cooldown_seconds: float = 60.0
    expected_exceptions: tuple[type[Exception], ...] = (Exception,)
    excluded_exceptions: tuple[type[Exception], ...] = ()

    def __post_init__(self) -> None:
        if self.failure_threshold < 1:
            raise ValueError("failure_threshold must be >= 1")
        if self.success_threshold < 1:
            raise ValueError("success_threshold must be >= 1")
        if self.cooldown_seconds < 0:
            raise ValueError("cooldown_seconds must be >= 0")


class CircuitBreaker:
    """Stateful proxy around a dangerous async operation.

    State changes are applied under a lock that is never held across an
    ``await``, so concurrent callers sharing one breaker see each outcome
    applied atomically, in the order the underlying calls settle.
    """

    def __init__(
        self,
        name: str,
        *,
        config: CircuitBreakerConfig | None = None,
        listeners: Sequence[BreakerListener] | None = None,
    ) -> None:
        """Build a circuit breaker with optional custom dependencies.

        Args:
            name: Breaker name used for errors, stats and listener events.
            config: Breaker behavior configuration. Defaults to
                ``CircuitBreakerConfig()``.
            listeners: Optional listener hooks for breaker events.
        """
        self.name = name
        self.config = CircuitBreakerConfig() if config is None else config
        self._listeners = tuple(listeners) if listeners is not None else ()
        self._lock = threading.RLock()
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._next_attempt_at: datetime | None = None
        self._last_error: Exception | None = None

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    @property
    def success_count(self) -> int:
        return self._success_count

    @property
    def next_attempt_at(self) -> datetime | None:
        return self._next_attempt_at

    @property
    def last_error(self) -> Exception | None:
        return self._last_error

    def is_open(self) -> bool:
        """Return true while the breaker is ``OPEN``."""
        return self._state == CircuitState.OPEN

    def get_stats(self) -> BreakerSnapshot:
        """Return a consistent snapshot of counters, thresholds and timing."""
        with self._lock:
            last_error = self._last_error
            return BreakerSnapshot(
                name=self.name,
                state=self._state,
                failure_count=self._failure_count,
                success_count=self._success_count,
                failure_threshold=self.config.failure_threshold,
                success_threshold=self.config.success_threshold,
                cooldown_seconds=self.config.cooldown_seconds,
                next_attempt_at=self._next_attempt_at,
                last_error=None if last_error is None else str(last_error),
                last_error_type=(
                    None if last_error is None else last_error.__class__.__name__
                ),
            )

    def reset(self) -> None:
        """Force ``CLOSED`` with all counters and the cooldown cleared."""
        with self._lock:
            self._failure_count = 0
            self._success_count = 0
            self._next_attempt_at = None
            self._last_error = None
            self._transition(CircuitState.CLOSED)

    def open(self) -> None:
        """Force ``OPEN`` and start a fresh cooldown window."""
        with self._lock:
            self._success_count = 0
            self._trip()

    def _emit_state_change(self, old: CircuitState, new: CircuitState) -> None:
        for listener in self._listeners:
            try:
                listener.on_state_change(self.name, old, new)
            except Exception:
                continue

    def _emit_call_rejected(self) -> None:
        for listener in self._listeners:
            try:
                listener.on_call_rejected(self.name)
            except Exception:
                continue

    def _emit_call_succeeded(self, elapsed: float) -> None:
        for listener in self._listeners:
            try:
                listener.on_call_succeeded(self.name, elapsed)
            except Exception:
                continue

    def _emit_call_failed(self, exc: Exception, elapsed: float) -> None:
        for listener in self._listeners:
            try:
                listener.on_call_failed(self.name, exc, elapsed)
            except Exception:
                continue

    def _transition(self, new: CircuitState) -> None:
        old = self._state
        if old == new:
            return
        self._state = new
        self._emit_state_change(old, new)

    def _trip(self) -> None:
        cooldown = timedelta(seconds=self.config.cooldown_seconds)
        self._next_attempt_at = _utcnow() + cooldown
        self._transition(CircuitState.OPEN)

    def _admit(self) -> None:
        with self._lock:
            if self._state != CircuitState.OPEN:
                return

            now = _utcnow()
            next_attempt_at = self._next_attempt_at
            if next_attempt_at is not None and now < next_attempt_at:
                self._emit_call_rejected()
                last_error = self._last_error
                raise CircuitOpenError(
                    self.name,
                    next_attempt_at=next_attempt_at,
                    retry_after=(next_attempt_at - now).total_seconds(),
                    last_error_message=None if last_error is None else str(last_error),
                )

            self._success_count = 0
            self._transition(CircuitState.HALF_OPEN)

    def _record_success(self, elapsed: float) -> None:
        with self._lock:
            self._failure_count = 0
            self._last_error = None
            if self._state == CircuitState.HALF_OPEN:
                self._success_count += 1
                if self._success_count >= self.config.success_threshold:
                    self._success_count = 0
                    self._next_attempt_at = None
                    self._transition(CircuitState.CLOSED)
            self._emit_call_succeeded(elapsed)

    def _record_failure(self, exc: Exception, elapsed: float) -> None:
        with self._lock:
            self._failure_count += 1
            self._last_error = exc
            if self._state == CircuitState.HALF_OPEN:
                self._success_count = 0
                self._trip()
            elif self._failure_count >= self.config.failure_threshold:
                self._trip()
            self._emit_call_failed(exc, elapsed)

    async def call(
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
            Exception: The original exception from ``func`` when it is attempted
                and fails.
        """
        self._admit()

        start = time.monotonic()
        try:
            result = await func(*args, **kwargs)
        except self.config.excluded_exceptions:
            raise
        except self.config.expected_exceptions as exc:
            self._record_failure(exc, max(time.monotonic() - start, 0.0))
            raise
        else:
            self._record_success(max(time.monotonic() - start, 0.0))
            return result
