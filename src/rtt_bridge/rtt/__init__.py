from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import TYPE_CHECKING, Any, cast

import httpx

from rtt_bridge.circuit_breaker import BreakerSnapshot, CircuitOpenError
from rtt_bridge.errors import RequestError
from rtt_bridge.logging import AnyLogger, get_logger, log_info, log_warning
from rtt_bridge.resilient import (
    FetchOptions,
    ResilientClient,
    ResilientClientRegistry,
)
from rtt_bridge.retry import RetryOverrides
from rtt_bridge.rtt.constants import (
    AUTH_ERROR_STATUSES,
    CIRCUIT_OPEN_STATUS,
    RTT_SERVICE_NAME,
)

if TYPE_CHECKING:
    from rtt_bridge.settings import RttSettings


class RttApiError(RequestError):
    """Raised when an RTT API request fails."""

    def __init__(
        self,
        message: str,
        *,
        http_status: int | None = None,
        response_body: str | None = None,
        endpoint: str | None = None,
        context: dict[str, object] | None = None,
    ) -> None:
        """Initialize RTT error metadata.

        Args:
            message: Human-readable error message.
            http_status: Optional HTTP status observed from RTT.
            response_body: Optional response payload text.
            endpoint: Request URL, when one was built.
            context: Search parameters and diagnostic details.
        """
        super().__init__(message, http_status=http_status, response_body=response_body)
        self.endpoint = endpoint
        self.context = {} if context is None else dict(context)

    def is_auth_error(self) -> bool:
        return self.http_status in AUTH_ERROR_STATUSES

    def is_retryable(self) -> bool:
        return self.http_status is None or self.http_status >= 500

    def to_dict(self) -> dict[str, object]:
        return {
            "message": str(self),
            "http_status": self.http_status,
            "endpoint": self.endpoint,
            "context": self.context,
            "is_auth_error": self.is_auth_error(),
            "is_retryable": self.is_retryable(),
        }


@dataclass(frozen=True)
class RttApiHealth:
    """RTT breaker statistics plus a single health verdict."""

    stats: BreakerSnapshot
    is_healthy: bool

    def as_dict(self) -> dict[str, object]:
        return {**self.stats.as_dict(), "is_healthy": self.is_healthy}


class RttApiClient:
    """Search client for the Realtime Trains API guarded by a shared breaker."""

    def __init__(
        self,
        settings: RttSettings,
        *,
        registry: ResilientClientRegistry,
        http_client: httpx.AsyncClient | None = None,
        logger: AnyLogger | None = None,
    ) -> None:
        """Create an RTT client bound to the registry's ``rtt_api`` client.

        Args:
            settings: Credentials, endpoint and resilience settings.
            registry: Registry shared by every RTT call site.
            http_client: Async HTTP client owned by this caller. A short-lived
                client is used per attempt when omitted.
            logger: Logger for RTT and resilience events.
        """
        self._settings = settings
        self._http_client = http_client
        self._logger = get_logger(__name__) if logger is None else logger
        self._resilient: ResilientClient = registry.get_or_create(
            RTT_SERVICE_NAME,
            settings.resilient_client_config(),
            logger=self._logger,
        )

    def search_url(self, origin: str, destination: str, run_date: date) -> str:
        return (
            f"{self._settings.base_url}/search/{origin}/to/{destination}/"
            f"{run_date:%Y/%m/%d}"
        )

    async def search(
        self,
        origin: str,
        destination: str,
        run_date: date,
        *,
        max_retries: int | None = None,
    ) -> dict[str, Any]:
        """Search services from ``origin`` to ``destination`` on ``run_date``.

        Raises:
            RttApiError: For invalid input, missing credentials, upstream
                failures after retries, or an open circuit.
        """
        context: dict[str, object] = {
            "origin": origin,
            "destination": destination,
            "date": run_date.isoformat(),
        }
        if not origin or not destination:
            raise RttApiError(
                "search requires both origin and destination TIPLOC",
                context=context,
            )
        if not self._settings.has_credentials:
            raise RttApiError("RTT API credentials not configured", context=context)

        url = self.search_url(origin, destination, run_date)
        options = FetchOptions(
            client=self._http_client,
            request_kwargs={
                "auth": httpx.BasicAuth(
                    cast(str, self._settings.user),
                    cast(str, self._settings.password),
                ),
            },
            timeout=self._settings.request_timeout_seconds,
        )

        def _build_error(
            response: httpx.Response, body: str, attempt: int
        ) -> RequestError:
            return RttApiError(
                "RTT API request failed: "
                f"{response.status_code} {response.reason_phrase}",
                http_status=response.status_code,
                response_body=body,
                endpoint=url,
                context={**context, "attempt": attempt},
            )

        overrides: RetryOverrides = {}
        if max_retries is not None:
            overrides["max_retries"] = max_retries

        try:
            payload = await self._resilient.fetch_json(
                url, options, build_error=_build_error, **overrides
            )
        except CircuitOpenError as exc:
            raise RttApiError(
                "RTT API temporarily unavailable (circuit breaker open)",
                http_status=CIRCUIT_OPEN_STATUS,
                endpoint=url,
                context={
                    **context,
                    "circuit_open": True,
                    "next_attempt_at": exc.next_attempt_at.isoformat(),
                },
            ) from exc
        except RttApiError:
            raise
        except Exception as exc:
            raise RttApiError(
                f"Network error calling RTT API: {exc}",
                endpoint=url,
                context={**context, "original_error": str(exc)},
            ) from exc

        if not isinstance(payload, dict):
            raise RttApiError(
                "RTT API response is not a JSON object",
                endpoint=url,
                context=context,
            )
        log_info(
            self._logger,
            "rtt.search_completed",
            url=url,
            services=len(payload.get("services") or ()),
        )
        return cast(dict[str, Any], payload)

    def health(self) -> RttApiHealth:
        """Return breaker statistics for health checks and diagnostics."""
        return RttApiHealth(
            stats=self._resilient.get_stats(),
            is_healthy=not self._resilient.is_circuit_open(),
        )

    def reset_circuit(self) -> None:
        """Close the RTT breaker after the underlying issue is fixed."""
        log_warning(self._logger, "rtt.circuit_reset_requested")
        self._resilient.reset_circuit()


__all__ = [
    "RttApiClient",
    "RttApiError",
    "RttApiHealth",
]
