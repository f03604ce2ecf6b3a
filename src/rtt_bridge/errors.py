"""Shared error types for rtt_bridge.

Every failure that reaches the retry classifier is reduced to exactly one
``FailureKind`` variant by ``classify_failure``.
"""

from __future__ import annotations

from dataclasses import dataclass


class RequestError(RuntimeError):
    """Base exception for classified upstream request failures."""

    def __init__(
        self,
        message: str,
        http_status: int | None = None,
        response_body: str | None = None,
    ) -> None:
        """Initialize request-error metadata.

        Args:
            message: Human-readable error message.
            http_status: Optional HTTP status observed from the upstream.
            response_body: Optional response payload text.
        """
        super().__init__(message)
        self.http_status = http_status
        self.response_body = response_body


class HttpStatusError(RequestError):
    """Raised when the upstream responded with a non-success status."""

    def __init__(
        self,
        message: str,
        http_status: int,
        response_body: str | None = None,
    ) -> None:
        super().__init__(message, http_status=http_status, response_body=response_body)


class NetworkError(RequestError):
    """Raised when no response was received at all."""

    def __init__(self, message: str) -> None:
        super().__init__(message)


class ResponseDecodeError(RequestError):
    """Raised when a success response body is not valid JSON."""

    def __init__(self, message: str, response_body: str | None = None) -> None:
        super().__init__(message, response_body=response_body)


@dataclass(frozen=True)
class NetworkFailure:
    """No response was received from the upstream."""


@dataclass(frozen=True)
class HttpFailure:
    """A response was received and the request was rejected."""

    status: int
    body: str | None = None


@dataclass(frozen=True)
class Unclassified:
    """A failure carrying no transport or status metadata."""


FailureKind = NetworkFailure | HttpFailure | Unclassified


def classify_failure(error: BaseException) -> FailureKind:
    """Reduce an exception to the failure variant that drives retry decisions."""
    if isinstance(error, NetworkError):
        return NetworkFailure()
    if isinstance(error, RequestError) and error.http_status is not None:
        return HttpFailure(status=error.http_status, body=error.response_body)
    return Unclassified()
