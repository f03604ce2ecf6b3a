from __future__ import annotations

from pydantic import ValidationInfo, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from rtt_bridge.circuit_breaker import CircuitBreakerConfig
from rtt_bridge.logging import get_log_level_value
from rtt_bridge.resilient import ResilientClientConfig
from rtt_bridge.retry import (
    DEFAULT_NON_RETRYABLE_STATUS_CODES,
    DEFAULT_RETRYABLE_STATUS_CODES,
    RetryConfig,
)
from rtt_bridge.rtt.constants import RTT_BASE_URL


def prefixed_settings_config(prefix: str) -> SettingsConfigDict:
    """Build standard Pydantic settings config for prefixed environments."""
    return SettingsConfigDict(env_prefix=prefix, case_sensitive=False)


class RttSettings(BaseSettings):
    """Settings for the RTT API client and its resilience layer.

    Numeric fields are present-or-absent: an omitted value takes its default,
    an explicit value is validated as given. A zero threshold is rejected
    rather than replaced with the default.
    """

    model_config = prefixed_settings_config("RTT_")

    user: str | None = None
    password: str | None = None
    base_url: str = RTT_BASE_URL
    request_timeout_seconds: float = 10.0
    failure_threshold: int = 5
    success_threshold: int = 2
    cooldown_seconds: float = 60.0
    max_retries: int = 3
    base_delay_seconds: float = 1.0
    max_delay_seconds: float = 10.0
    retryable_status_codes: frozenset[int] = DEFAULT_RETRYABLE_STATUS_CODES
    non_retryable_status_codes: frozenset[int] = DEFAULT_NON_RETRYABLE_STATUS_CODES
    log_level: str = "INFO"

    @field_validator("user", "password", mode="before")
    @classmethod
    def _blank_credentials_are_missing(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("base_url", mode="before")
    @classmethod
    def _validate_base_url(cls, value: object, info: ValidationInfo) -> object:
        if not isinstance(value, str):
            return value
        normalized = value.strip().rstrip("/")
        if not normalized:
            raise ValueError(f"{info.field_name} must be non-empty")
        return normalized

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, value: object) -> object:
        if not isinstance(value, str):
            return value
        get_log_level_value(value)
        return value.strip().upper()

    @model_validator(mode="after")
    def _validate_resilience(self) -> RttSettings:
        if self.request_timeout_seconds <= 0:
            raise ValueError("request_timeout_seconds must be > 0")
        self.resilient_client_config()
        return self

    @property
    def has_credentials(self) -> bool:
        return bool(self.user and self.password)

    def resilient_client_config(self) -> ResilientClientConfig:
        """Build breaker and retry configuration from these settings."""
        return ResilientClientConfig(
            breaker=CircuitBreakerConfig(
                failure_threshold=self.failure_threshold,
                success_threshold=self.success_threshold,
                cooldown_seconds=self.cooldown_seconds,
            ),
            retry=RetryConfig(
                max_retries=self.max_retries,
                base_delay=self.base_delay_seconds,
                max_delay=self.max_delay_seconds,
                retryable_status_codes=self.retryable_status_codes,
                non_retryable_status_codes=self.non_retryable_status_codes,
            ),
        )
