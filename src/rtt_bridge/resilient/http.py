from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

import httpx

from rtt_bridge.errors import (
    HttpStatusError,
    NetworkError,
    RequestError,
    ResponseDecodeError,
)
from rtt_bridge.logging import AnyLogger, get_logger, log_debug
from rtt_bridge.retry import RetryClassifier, RetryConfig, should_retry, with_retry

_logger = get_logger(__name__)

BuildError = Callable[[httpx.Response, str, int], RequestError]


@dataclass(frozen=True)
class FetchOptions:
    """How one HTTP-JSON request is issued.

    Attributes:
        client: Transport to use. A short-lived client is opened per attempt
            when omitted.
        method: HTTP method.
        headers: Headers merged over ``request_kwargs["headers"]``.
        request_kwargs: Extra keyword arguments for ``httpx.AsyncClient.request``.
        timeout: Timeout in seconds for a short-lived client.
    """

    client: httpx.AsyncClient | None = None
    method: str = "GET"
    headers: Mapping[str, str] = field(default_factory=dict)
    request_kwargs: Mapping[str, Any] = field(default_factory=dict)
    timeout: float = 10.0

    def merged_headers(self) -> dict[str, str]:
        base = self.request_kwargs.get("headers") or {}
        return {**dict(base), **dict(self.headers)}


def default_build_error(
    response: httpx.Response,
    body: str,
    attempt: int,
) -> RequestError:
    """Build the default classified error for a non-success response."""
    del attempt
    return HttpStatusError(
        f"HTTP request failed: {response.status_code} {response.reason_phrase}",
        http_status=response.status_code,
        response_body=body,
    )


async def _request_json(
    client: httpx.AsyncClient,
    url: str,
    options: FetchOptions,
    *,
    attempt: int,
    build_error: BuildError,
    logger: AnyLogger,
) -> Any:
    request_kwargs = dict(options.request_kwargs)
    request_kwargs["headers"] = options.merged_headers()
    try:
        response = await client.request(options.method, url, **request_kwargs)
    except Exception as exc:
        raise NetworkError(f"Request to {url} failed: {exc}") from exc

    log_debug(
        logger,
        "http.response",
        url=url,
        status=response.status_code,
        attempt=attempt + 1,
    )
    if not response.is_success:
        raise build_error(response, response.text, attempt)

    try:
        return response.json()
    except ValueError as exc:
        raise ResponseDecodeError(
            f"Response from {url} is not valid JSON.",
            response_body=response.text,
        ) from exc


async def fetch_json_with_retry(
    url: str,
    options: FetchOptions | None = None,
    *,
    config: RetryConfig | None = None,
    build_error: BuildError | None = None,
    classifier: RetryClassifier = should_retry,
    sleep: Callable[[float], Awaitable[None]] | None = None,
    logger: AnyLogger | None = None,
) -> Any:
    """Request ``url`` and decode its JSON body, retrying transient failures.

    Non-success responses become classified errors through ``build_error``;
    anything the transport raises before a response exists becomes
    ``NetworkError``.
    """
    resolved = FetchOptions() if options is None else options
    error_builder = default_build_error if build_error is None else build_error
    log = _logger if logger is None else logger

    async def _attempt(attempt: int) -> Any:
        log_debug(
            log,
            "http.request",
            method=resolved.method,
            url=url,
            attempt=attempt + 1,
        )
        if resolved.client is not None:
            return await _request_json(
                resolved.client,
                url,
                resolved,
                attempt=attempt,
                build_error=error_builder,
                logger=log,
            )
        async with httpx.AsyncClient(timeout=resolved.timeout) as client:
            return await _request_json(
                client,
                url,
                resolved,
                attempt=attempt,
                build_error=error_builder,
                logger=log,
            )

    return await with_retry(
        _attempt,
        config,
        classifier=classifier,
        sleep=sleep,
        logger=log,
    )
