from __future__ import annotations

from typing import Any, cast

import pytest
from pydantic import ValidationError

from rtt_bridge.settings import RttSettings


def _build_settings(**overrides: object) -> RttSettings:
    values: dict[str, object] = {
        "user": "rttuser",
        "password": "secret",
    }
    values.update(overrides)
    return RttSettings(**cast(Any, values))


@pytest.fixture(autouse=True)
def _clear_rtt_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "RTT_USER",
        "RTT_PASSWORD",
        "RTT_BASE_URL",
        "RTT_FAILURE_THRESHOLD",
        "RTT_MAX_RETRIES",
        "RTT_RETRYABLE_STATUS_CODES",
        "RTT_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)


def test_settings_build_default_resilience_config() -> None:
    settings = _build_settings()
    config = settings.resilient_client_config()

    assert settings.base_url == "https://api.rtt.io/api/v1/json"
    assert settings.has_credentials is True
    assert config.breaker.failure_threshold == 5
    assert config.breaker.success_threshold == 2
    assert config.breaker.cooldown_seconds == 60.0
    assert config.retry.max_retries == 3
    assert config.retry.base_delay == 1.0
    assert config.retry.max_delay == 10.0
    assert config.retry.retryable_status_codes == frozenset({429, 500, 502, 503, 504})


def test_settings_read_prefixed_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("RTT_USER", "env-user")
    monkeypatch.setenv("RTT_PASSWORD", "env-pass")
    monkeypatch.setenv("RTT_FAILURE_THRESHOLD", "7")
    monkeypatch.setenv("RTT_MAX_RETRIES", "0")
    monkeypatch.setenv("RTT_RETRYABLE_STATUS_CODES", "[503]")
    monkeypatch.setenv("RTT_LOG_LEVEL", "debug")

    settings = RttSettings()
    config = settings.resilient_client_config()

    assert settings.user == "env-user"
    assert settings.log_level == "DEBUG"
    assert config.breaker.failure_threshold == 7
    assert config.retry.max_retries == 0
    assert config.retry.retryable_status_codes == frozenset({503})


def test_settings_strip_trailing_slash_from_base_url() -> None:
    settings = _build_settings(base_url=" https://rtt.example/api/ ")

    assert settings.base_url == "https://rtt.example/api"


def test_blank_credentials_are_treated_as_missing() -> None:
    settings = _build_settings(user=" ", password="")

    assert settings.user is None
    assert settings.has_credentials is False


@pytest.mark.parametrize(
    ("overrides", "message"),
    [
        ({"failure_threshold": 0}, "failure_threshold must be >= 1"),
        ({"success_threshold": 0}, "success_threshold must be >= 1"),
        ({"cooldown_seconds": -1}, "cooldown_seconds must be >= 0"),
        ({"max_retries": -1}, "max_retries must be >= 0"),
        (
            {"base_delay_seconds": 5.0, "max_delay_seconds": 1.0},
            "max_delay must be >= base_delay",
        ),
        ({"request_timeout_seconds": 0}, "request_timeout_seconds must be > 0"),
        ({"base_url": "   "}, "base_url must be non-empty"),
        ({"log_level": "TRACE"}, "log_level must be one of"),
    ],
)
def test_settings_reject_invalid_values(
    overrides: dict[str, object], message: str
) -> None:
    with pytest.raises(ValidationError, match=message):
        _build_settings(**overrides)
