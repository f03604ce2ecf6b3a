"""Circuit breaker + retry composition for upstream HTTP dependencies."""

from rtt_bridge.resilient.client import ResilientClient, ResilientClientConfig
from rtt_bridge.resilient.http import (
    BuildError,
    FetchOptions,
    default_build_error,
    fetch_json_with_retry,
)
from rtt_bridge.resilient.registry import ResilientClientRegistry

__all__ = [
    "BuildError",
    "FetchOptions",
    "ResilientClient",
    "ResilientClientConfig",
    "ResilientClientRegistry",
    "default_build_error",
    "fetch_json_with_retry",
]
