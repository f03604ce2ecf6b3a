from __future__ import annotations

import asyncio

import pytest
from tenacity import AsyncRetrying

import rtt_bridge.retry as retry_mod
from rtt_bridge.errors import (
    HttpStatusError,
    NetworkError,
    RequestError,
    ResponseDecodeError,
)
from rtt_bridge.retry import (
    RetryConfig,
    build_retrying,
    calculate_backoff_delay,
    should_retry,
    with_retry,
)
from tests.rtt_bridge.support.fakes import (
    FakeLogger,
    RecordingSleep,
    ScriptedOperation,
)

pytestmark = pytest.mark.asyncio


@pytest.mark.parametrize(
    ("kwargs", "message"),
    [
        ({"max_retries": -1}, "max_retries must be >= 0"),
        ({"base_delay": -0.1}, "base_delay must be >= 0"),
        ({"base_delay": 0.0, "max_delay": -0.1}, "max_delay must be >= 0"),
        ({"base_delay": 2.0, "max_delay": 1.0}, "max_delay must be >= base_delay"),
        (
            {
                "retryable_status_codes": frozenset({500, 404}),
                "non_retryable_status_codes": frozenset({404}),
            },
            "404",
        ),
    ],
)
async def test_retry_config_validation(kwargs: dict[str, object], message: str) -> None:
    with pytest.raises(ValueError, match=message):
        RetryConfig(**kwargs)  # type: ignore[arg-type]


async def test_retry_config_defaults() -> None:
    config = RetryConfig()

    assert config.max_retries == 3
    assert config.base_delay == 1.0
    assert config.max_delay == 10.0
    assert config.retryable_status_codes == frozenset({429, 500, 502, 503, 504})
    assert config.non_retryable_status_codes == frozenset({400, 401, 403, 404})


async def test_retry_config_merged_returns_copy() -> None:
    config = RetryConfig()

    merged = config.merged(max_retries=1, base_delay=0.5)

    assert merged.max_retries == 1
    assert merged.base_delay == 0.5
    assert config.max_retries == 3
    assert config.merged() is config


async def test_retry_config_merged_status_override_takes_precedence() -> None:
    config = RetryConfig()

    retry_404 = config.merged(retryable_status_codes=frozenset({404, 503}))
    fail_503 = config.merged(non_retryable_status_codes=frozenset({503}))

    assert retry_404.retryable_status_codes == frozenset({404, 503})
    assert retry_404.non_retryable_status_codes == frozenset({400, 401, 403})
    assert should_retry(HttpStatusError("gone", http_status=404), 0, retry_404)
    assert fail_503.retryable_status_codes == frozenset({429, 500, 502, 504})
    assert not should_retry(HttpStatusError("busy", http_status=503), 0, fail_503)


async def test_retry_config_merged_rejects_overlap_when_both_sets_given() -> None:
    with pytest.raises(ValueError, match="404"):
        RetryConfig().merged(
            retryable_status_codes=frozenset({404}),
            non_retryable_status_codes=frozenset({404}),
        )


async def test_retry_config_accepts_plain_sets() -> None:
    config = RetryConfig(retryable_status_codes={503})  # type: ignore[arg-type]

    assert config.retryable_status_codes == frozenset({503})


@pytest.mark.parametrize("attempt", range(6))
async def test_backoff_delay_stays_within_jitter_bounds(attempt: int) -> None:
    config = RetryConfig(base_delay=1.0, max_delay=10.0)
    lower = min(1.0 * 2**attempt, 10.0)
    upper = min(1.3 * 2**attempt, 10.0)

    for _ in range(50):
        delay = calculate_backoff_delay(attempt, config)
        assert lower <= delay <= upper


async def test_backoff_delay_uses_jitter_ratio(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(retry_mod.random, "uniform", lambda low, high: high)

    assert calculate_backoff_delay(1, RetryConfig(base_delay=1.0)) == pytest.approx(
        2.6
    )
    assert calculate_backoff_delay(5, RetryConfig(base_delay=1.0)) == 10.0


async def test_should_retry_stops_once_attempts_exhausted() -> None:
    config = RetryConfig(max_retries=2)
    error = NetworkError("down")

    assert should_retry(error, 1, config) is True
    assert should_retry(error, 2, config) is False


@pytest.mark.parametrize(
    ("error", "expected"),
    [
        (NetworkError("down"), True),
        (HttpStatusError("rate limited", http_status=429), True),
        (HttpStatusError("boom", http_status=503), True),
        (HttpStatusError("unauthorized", http_status=401), False),
        (HttpStatusError("missing", http_status=404), False),
        (HttpStatusError("teapot", http_status=418), False),
        (RequestError("no status"), True),
        (ResponseDecodeError("bad json", response_body="<html>"), True),
        (ValueError("plain"), True),
    ],
)
async def test_should_retry_classification(
    error: BaseException, expected: bool
) -> None:
    assert should_retry(error, 0, RetryConfig()) is expected


async def test_with_retry_succeeds_after_transient_failures(
    recording_sleep: RecordingSleep,
) -> None:
    operation = ScriptedOperation(
        HttpStatusError("busy", http_status=503),
        NetworkError("reset"),
        "done",
    )
    config = RetryConfig(max_retries=3, base_delay=1.0, max_delay=10.0)

    result = await with_retry(operation, config, sleep=recording_sleep)

    assert result == "done"
    assert operation.calls == 3
    assert operation.attempts == [0, 1, 2]
    assert len(recording_sleep.delays) == 2
    assert 1.0 <= recording_sleep.delays[0] <= 1.3
    assert 2.0 <= recording_sleep.delays[1] <= 2.6


async def test_with_retry_propagates_non_retryable_error_unchanged(
    recording_sleep: RecordingSleep,
) -> None:
    error = HttpStatusError("forbidden", http_status=403)
    operation = ScriptedOperation(error, "never")

    with pytest.raises(HttpStatusError) as excinfo:
        await with_retry(operation, RetryConfig(max_retries=5), sleep=recording_sleep)

    assert excinfo.value is error
    assert operation.calls == 1
    assert recording_sleep.delays == []


async def test_with_retry_raises_last_error_after_exhaustion(
    recording_sleep: RecordingSleep,
) -> None:
    last = NetworkError("third")
    operation = ScriptedOperation(NetworkError("first"), NetworkError("second"), last)

    with pytest.raises(NetworkError) as excinfo:
        await with_retry(operation, RetryConfig(max_retries=2), sleep=recording_sleep)

    assert excinfo.value is last
    assert operation.calls == 3


async def test_with_retry_zero_retries_invokes_once(
    recording_sleep: RecordingSleep,
) -> None:
    operation = ScriptedOperation(NetworkError("down"), "never")

    with pytest.raises(NetworkError):
        await with_retry(operation, RetryConfig(max_retries=0), sleep=recording_sleep)

    assert operation.calls == 1


async def test_with_retry_uses_custom_classifier(
    recording_sleep: RecordingSleep,
) -> None:
    seen: list[int] = []

    def _never(error: BaseException, attempt: int, config: RetryConfig) -> bool:
        seen.append(attempt)
        return False

    operation = ScriptedOperation(NetworkError("down"), "never")

    with pytest.raises(NetworkError):
        await with_retry(operation, classifier=_never, sleep=recording_sleep)

    assert seen == [0]
    assert operation.calls == 1


async def test_with_retry_does_not_retry_cancellation(
    recording_sleep: RecordingSleep,
) -> None:
    operation = ScriptedOperation(asyncio.CancelledError(), "never")

    with pytest.raises(asyncio.CancelledError):
        await with_retry(operation, RetryConfig(max_retries=3), sleep=recording_sleep)

    assert operation.calls == 1


async def test_with_retry_logs_scheduled_retries_and_recovery(
    recording_sleep: RecordingSleep,
) -> None:
    logger = FakeLogger()
    operation = ScriptedOperation(NetworkError("reset"), "ok")

    await with_retry(
        operation,
        RetryConfig(max_retries=2, base_delay=0.0, max_delay=0.0),
        sleep=recording_sleep,
        logger=logger,
    )

    scheduled = [call for call in logger.calls if call[1] == "retry.scheduled"]
    assert len(scheduled) == 1
    assert scheduled[0][2]["attempt"] == 1
    assert scheduled[0][2]["error"] == "reset"
    assert ("info", "retry.succeeded", {"retries": 1}) in logger.calls


async def test_build_retrying_returns_async_retrying() -> None:
    retrying = build_retrying(RetryConfig(max_retries=1))

    assert isinstance(retrying, AsyncRetrying)
