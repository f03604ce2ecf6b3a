from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field, replace
from typing import Any, TypeVar, Unpack

import httpx

from rtt_bridge.circuit_breaker import (
    BreakerListener,
    BreakerSnapshot,
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitState,
    LoggingBreakerListener,
)
from rtt_bridge.logging import AnyLogger, get_logger, log_info, log_warning
from rtt_bridge.resilient.http import BuildError, FetchOptions, fetch_json_with_retry
from rtt_bridge.retry import (
    RetryClassifier,
    RetryConfig,
    RetryOverrides,
    should_retry,
    with_retry,
)

T = TypeVar("T")


@dataclass(frozen=True)
class ResilientClientConfig:
    """Breaker and retry configuration for one upstream dependency."""

    breaker: CircuitBreakerConfig = field(default_factory=CircuitBreakerConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)


class ResilientClient:
    """Breaker-protected, retrying calls against one named upstream.

    The breaker wraps the whole retry loop, so one ``execute`` or
    ``fetch_json`` call records exactly one outcome with the breaker no matter
    how many attempts the retry loop made.
    """

    def __init__(
        self,
        name: str,
        config: ResilientClientConfig | None = None,
        *,
        logger: AnyLogger | None = None,
        listeners: Sequence[BreakerListener] | None = None,
        http_client: httpx.AsyncClient | None = None,
        sleep: Callable[[float], Awaitable[None]] | None = None,
    ) -> None:
        """Create a resilient client.

        Args:
            name: Upstream service name, also used as the breaker name.
            config: Breaker and retry configuration.
            logger: Logger for retry, breaker and administrative events.
            listeners: Extra breaker listeners, notified after the logging one.
            http_client: Default transport for ``fetch_json``. Registry-shared
                clients are usually built without one.
            sleep: Async sleep used between retries.
        """
        self.name = name
        self.config = ResilientClientConfig() if config is None else config
        self._logger = get_logger(__name__) if logger is None else logger
        self._http_client = http_client
        self._sleep = sleep
        self._breaker = CircuitBreaker(
            name,
            config=self.config.breaker,
            listeners=[
                LoggingBreakerListener(self._logger),
                *(listeners or ()),
            ],
        )

    @property
    def breaker(self) -> CircuitBreaker:
        return self._breaker

    @property
    def retry_config(self) -> RetryConfig:
        return self.config.retry

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        classifier: RetryClassifier | None = None,
        **overrides: Unpack[RetryOverrides],
    ) -> T:
        """Run ``operation`` with retries inside the circuit breaker.

        Raises:
            CircuitOpenError: When the circuit rejects the call.
            Exception: The final failure once retries stop.
        """
        retry_config = self.config.retry.merged(**overrides)

        async def _attempt(attempt: int) -> T:
            del attempt
            return await operation()

        async def _guarded() -> T:
            return await with_retry(
                _attempt,
                retry_config,
                classifier=should_retry if classifier is None else classifier,
                sleep=self._sleep,
                logger=self._logger,
            )

        return await self._breaker.call(_guarded)

    async def fetch_json(
        self,
        url: str,
        options: FetchOptions | None = None,
        *,
        build_error: BuildError | None = None,
        classifier: RetryClassifier | None = None,
        **overrides: Unpack[RetryOverrides],
    ) -> Any:
        """Fetch and decode JSON from ``url`` with retries inside the breaker."""
        retry_config = self.config.retry.merged(**overrides)
        resolved = FetchOptions() if options is None else options
        if resolved.client is None and self._http_client is not None:
            resolved = replace(resolved, client=self._http_client)

        return await self._breaker.call(
            fetch_json_with_retry,
            url,
            resolved,
            config=retry_config,
            build_error=build_error,
            classifier=should_retry if classifier is None else classifier,
            sleep=self._sleep,
            logger=self._logger,
        )

    def get_stats(self) -> BreakerSnapshot:
        return self._breaker.get_stats()

    def get_circuit_state(self) -> CircuitState:
        return self._breaker.state

    def is_circuit_open(self) -> bool:
        return self._breaker.is_open()

    def reset_circuit(self) -> None:
        """Close the circuit after operator intervention."""
        log_info(self._logger, "circuit_breaker.manual_reset", breaker=self.name)
        self._breaker.reset()

    def open_circuit(self) -> None:
        """Open the circuit for maintenance or manual intervention."""
        log_warning(self._logger, "circuit_breaker.manual_open", breaker=self.name)
        self._breaker.open()
