from __future__ import annotations

import asyncio

import pytest

from boardrelay import (
    AuthFailureError,
    CancellationToken,
    ContentGenerationError,
    DeliveryCancelledError,
    DeliveryRegistry,
    DestinationApiError,
    RetryExhaustedError,
    TransientFailureError,
    call_with_retry,
    is_retryable,
)


def run_async(coro):
    return asyncio.run(coro)


class _SleepRecorder:
    def __init__(self) -> None:
        self.waits: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.waits.append(seconds)


def test_retry_backs_off_exponentially_until_success():
    async def scenario() -> None:
        sleep = _SleepRecorder()
        calls = {"n": 0}

        async def flaky() -> str:
            calls["n"] += 1
            if calls["n"] < 4:
                raise TransientFailureError("gateway timeout")
            return "ok"

        result = await call_with_retry(flaky, max_retries=3, base_delay_s=0.5, sleep=sleep)
        assert result == "ok"
        assert calls["n"] == 4
        assert sleep.waits == [0.5, 1.0, 2.0]

    run_async(scenario())


def test_retry_gives_up_immediately_on_non_retryable_message():
    async def scenario() -> None:
        sleep = _SleepRecorder()
        calls = {"n": 0}

        async def unauthorized() -> None:
            calls["n"] += 1
            raise RuntimeError("Request unauthorized by upstream")

        with pytest.raises(RuntimeError, match="unauthorized"):
            await call_with_retry(unauthorized, max_retries=3, base_delay_s=0.1, sleep=sleep)
        assert calls["n"] == 1
        assert sleep.waits == []

    run_async(scenario())


def test_retry_exhaustion_wraps_last_error():
    async def scenario() -> None:
        sleep = _SleepRecorder()

        async def always_down() -> None:
            raise ConnectionError("connection reset")

        with pytest.raises(RetryExhaustedError) as info:
            await call_with_retry(always_down, max_retries=2, base_delay_s=0.01, sleep=sleep)

        assert info.value.attempts == 3
        assert isinstance(info.value.last_error, ConnectionError)
        assert str(info.value) == "Operation failed after 3 attempts: connection reset"
        assert info.value.__cause__ is info.value.last_error
        assert len(sleep.waits) == 2

    run_async(scenario())


def test_retry_checks_token_before_each_attempt():
    async def scenario() -> None:
        token = CancellationToken()
        calls = {"n": 0}

        async def cancel_then_fail() -> None:
            calls["n"] += 1
            token.cancel()
            raise TransientFailureError("try again")

        with pytest.raises(DeliveryCancelledError):
            await call_with_retry(
                cancel_then_fail,
                max_retries=5,
                base_delay_s=0.0,
                token=token,
                sleep=_SleepRecorder(),
            )
        assert calls["n"] == 1

    run_async(scenario())


def test_is_retryable_uses_error_tags_before_message_text():
    assert is_retryable(TransientFailureError("invalid upstream state")) is True
    assert is_retryable(ContentGenerationError("boom")) is True
    assert is_retryable(AuthFailureError("token expired")) is False
    assert is_retryable(DeliveryCancelledError()) is False
    assert is_retryable(DestinationApiError(status=429, code="RATE", message="slow down")) is True
    assert is_retryable(DestinationApiError(status=503, code="DOWN", message="down")) is True
    assert is_retryable(DestinationApiError(status=404, code="NF", message="gone")) is False
    assert is_retryable(DestinationApiError(status=401, code="AUTH", message="nope")) is False
    assert is_retryable(TimeoutError()) is True
    assert is_retryable(RuntimeError("Board not found")) is False
    assert is_retryable(RuntimeError("temporary glitch")) is True


def test_registry_cancel_signals_token_once():
    async def scenario() -> None:
        registry = DeliveryRegistry()
        token = registry.register("delivery-1")
        assert "delivery-1" in registry
        assert registry.active_ids() == ["delivery-1"]

        assert registry.cancel("delivery-1", reason="user") is True
        assert token.cancelled
        assert token.reason == "user"
        assert len(registry) == 0
        assert registry.cancel("delivery-1") is False

        with pytest.raises(DeliveryCancelledError, match="Delivery cancelled"):
            token.raise_if_cancelled()
        await asyncio.wait_for(token.wait(), timeout=0.1)

    run_async(scenario())


def test_registry_rejects_duplicate_ids():
    registry = DeliveryRegistry()
    registry.register("delivery-1")
    with pytest.raises(ValueError, match="already registered"):
        registry.register("delivery-1")
    assert registry.unregister("delivery-1") is not None
    assert registry.unregister("delivery-1") is None
