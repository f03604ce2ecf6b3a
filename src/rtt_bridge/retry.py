from __future__ import annotations

import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field, replace
from typing import Any, TypedDict, TypeVar

from tenacity import AsyncRetrying, RetryCallState, stop_after_attempt
from tenacity.retry import retry_base
from tenacity.wait import wait_base

from rtt_bridge.errors import (
    HttpFailure,
    NetworkFailure,
    Unclassified,
    classify_failure,
)
from rtt_bridge.logging import AnyLogger, get_logger, log_debug, log_info

T = TypeVar("T")

_JITTER_RATIO = 0.3
_logger = get_logger(__name__)

DEFAULT_RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})
DEFAULT_NON_RETRYABLE_STATUS_CODES = frozenset({400, 401, 403, 404})


@dataclass(frozen=True)
class RetryConfig:
    """Retry attempt budget, backoff boundaries and status classification.

    Attributes:
        max_retries: Retries allowed after the first attempt.
        base_delay: Delay in seconds before the first retry.
        max_delay: Upper bound in seconds for any single delay.
        retryable_status_codes: Statuses worth another attempt.
        non_retryable_status_codes: Statuses that fail immediately.
    """

    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 10.0
    retryable_status_codes: frozenset[int] = field(
        default_factory=lambda: DEFAULT_RETRYABLE_STATUS_CODES
    )
    non_retryable_status_codes: frozenset[int] = field(
        default_factory=lambda: DEFAULT_NON_RETRYABLE_STATUS_CODES
    )

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.base_delay < 0:
            raise ValueError("base_delay must be >= 0")
        if self.max_delay < 0:
            raise ValueError("max_delay must be >= 0")
        if self.max_delay < self.base_delay:
            raise ValueError("max_delay must be >= base_delay")
        object.__setattr__(
            self, "retryable_status_codes", frozenset(self.retryable_status_codes)
        )
        object.__setattr__(
            self,
            "non_retryable_status_codes",
            frozenset(self.non_retryable_status_codes),
        )
        overlap = self.retryable_status_codes & self.non_retryable_status_codes
        if overlap:
            codes = ", ".join(str(code) for code in sorted(overlap))
            raise ValueError(f"status codes cannot be both retryable and not: {codes}")

    def merged(self, **overrides: Any) -> RetryConfig:
        """Return a copy with the given fields replaced.

        Overriding only one status set moves its codes out of the other, so
        ``merged(retryable_status_codes={404, 503})`` makes 404 retryable
        without restating the non-retryable set.
        """
        if not overrides:
            return self
        retryable = overrides.get("retryable_status_codes")
        non_retryable = overrides.get("non_retryable_status_codes")
        if retryable is not None and non_retryable is None:
            overrides["non_retryable_status_codes"] = (
                self.non_retryable_status_codes - frozenset(retryable)
            )
        elif non_retryable is not None and retryable is None:
            overrides["retryable_status_codes"] = (
                self.retryable_status_codes - frozenset(non_retryable)
            )
        return replace(self, **overrides)


class RetryOverrides(TypedDict, total=False):
    """Per-call replacements for ``RetryConfig`` fields."""

    max_retries: int
    base_delay: float
    max_delay: float
    retryable_status_codes: frozenset[int]
    non_retryable_status_codes: frozenset[int]


DEFAULT_RETRY_CONFIG = RetryConfig()

RetryClassifier = Callable[[BaseException, int, RetryConfig], bool]


def calculate_backoff_delay(
    attempt: int,
    config: RetryConfig = DEFAULT_RETRY_CONFIG,
) -> float:
    """Return the jittered exponential delay before zero-indexed retry ``attempt``.

    The delay is ``base_delay * 2**attempt`` plus up to 30% of itself as jitter,
    capped at ``max_delay``.
    """
    exponential = config.base_delay * (2**attempt)
    jitter = random.uniform(0, _JITTER_RATIO) * exponential
    return min(exponential + jitter, config.max_delay)


def should_retry(
    error: BaseException,
    attempt: int,
    config: RetryConfig = DEFAULT_RETRY_CONFIG,
) -> bool:
    """Decide whether a failed zero-indexed ``attempt`` deserves another try."""
    if attempt >= config.max_retries:
        return False

    match classify_failure(error):
        case NetworkFailure():
            return True
        case HttpFailure(status=status):
            if status in config.non_retryable_status_codes:
                return False
            return status in config.retryable_status_codes
        case Unclassified():
            return True


class wait_proportional_jitter(wait_base):  # noqa: N801
    """Tenacity wait strategy backed by ``calculate_backoff_delay``."""

    def __init__(self, config: RetryConfig) -> None:
        self.config = config

    def __call__(self, retry_state: RetryCallState) -> float:
        return calculate_backoff_delay(retry_state.attempt_number - 1, self.config)


class retry_if_classified(retry_base):  # noqa: N801
    """Tenacity retry predicate delegating to a failure classifier."""

    def __init__(self, config: RetryConfig, classifier: RetryClassifier) -> None:
        self.config = config
        self.classifier = classifier

    def __call__(self, retry_state: RetryCallState) -> bool:
        outcome = retry_state.outcome
        if outcome is None or not outcome.failed:
            return False
        error = outcome.exception()
        if not isinstance(error, Exception):
            return False
        return self.classifier(error, retry_state.attempt_number - 1, self.config)


def build_retrying(
    config: RetryConfig,
    *,
    classifier: RetryClassifier = should_retry,
    sleep: Callable[[float], Awaitable[None]] | None = None,
    before_sleep: Callable[[RetryCallState], None] | None = None,
) -> AsyncRetrying:
    """Build an ``AsyncRetrying`` with classified retries and jittered backoff."""
    options: dict[str, Any] = {
        "retry": retry_if_classified(config, classifier),
        "wait": wait_proportional_jitter(config),
        "stop": stop_after_attempt(config.max_retries + 1),
        "reraise": True,
    }
    if sleep is not None:
        options["sleep"] = sleep
    if before_sleep is not None:
        options["before_sleep"] = before_sleep
    return AsyncRetrying(**options)


async def with_retry(
    operation: Callable[[int], Awaitable[T]],
    config: RetryConfig | None = None,
    *,
    classifier: RetryClassifier = should_retry,
    sleep: Callable[[float], Awaitable[None]] | None = None,
    logger: AnyLogger | None = None,
) -> T:
    """Invoke ``operation(attempt)`` until it succeeds or the classifier gives up.

    Args:
        operation: Async callable receiving the zero-indexed attempt number.
        config: Retry configuration. Defaults to ``RetryConfig()``.
        classifier: Decides whether a failure is retried.
        sleep: Async sleep used between attempts. Defaults to tenacity's.
        logger: Logger for retry events.

    Returns:
        The first successful result of ``operation``.

    Raises:
        Exception: The last failure, unchanged, once retries stop.
    """
    resolved = DEFAULT_RETRY_CONFIG if config is None else config
    log = _logger if logger is None else logger

    def _before_sleep(retry_state: RetryCallState) -> None:
        outcome = retry_state.outcome
        error = None if outcome is None else outcome.exception()
        next_action = retry_state.next_action
        delay = 0.0 if next_action is None else next_action.sleep
        log_info(
            log,
            "retry.scheduled",
            attempt=retry_state.attempt_number,
            max_retries=resolved.max_retries,
            delay_seconds=round(delay, 3),
            error=str(error),
        )

    retrying = build_retrying(
        resolved,
        classifier=classifier,
        sleep=sleep,
        before_sleep=_before_sleep,
    )
    async for attempt in retrying:
        with attempt:
            index = attempt.retry_state.attempt_number - 1
            if index > 0:
                log_debug(log, "retry.attempt", attempt=index + 1)
            result = await operation(index)
            if index > 0:
                log_info(log, "retry.succeeded", retries=index)
            return result

    raise RuntimeError("Retry loop exited unexpectedly.")
