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
class BreakerSnapshot:
    """Point-in-time view of breaker internals useful for metrics/logging.

    Attributes:
        name: Breaker name.
        state: Current breaker state.
        failure_count: Consecutive failures since the last reset.
        success_count: Consecutive successes while ``HALF_OPEN``.
        failure_threshold: Failures required while ``CLOSED`` before opening.
        success_threshold: Successes required while ``HALF_OPEN`` before closing.
        cooldown_seconds: Seconds an ``OPEN`` breaker waits before probing.
        next_attempt_at: Earliest probe time while open, if any.
        last_error: Message of the most recent failure, if any.
        last_error_type: Class name of the most recent failure, if any.
    """

    name: str
    state: CircuitState
    failure_count: int
    success_count: int
    failure_threshold: int
    success_threshold: int
    cooldown_seconds: float
    next_attempt_at: datetime | None
    last_error: str | None
    last_error_type: str | None

    def as_dict(self) -> dict[str, object]:
        """Return a JSON-friendly mapping for health reporting."""
        return {
            "name": self.name,
            "state": str(self.state),
            "failure_count": self.failure_count,
            "success_count": self.success_count,
            "failure_threshold": self.failure_threshold,
            "success_threshold": self.success_threshold,
            "cooldown_seconds": self.cooldown_seconds,
            "next_attempt_at": (
                None if self.next_attempt_at is None
                else self.next_attempt_at.isoformat()
            ),
            "last_error": self.last_error,
            "last_error_type": self.last_error_type,
        }
