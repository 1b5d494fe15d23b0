"""Tests for spanscore.execution.retry - transient error retry with backoff."""

from __future__ import annotations

import random

import pytest

from spanscore.execution.retry import (
    RetryPolicy,
    is_connection_failure,
    is_transient,
    retry_with_backoff,
)


class _RecordingSleep:
    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class TestIsTransient:
    """Test is_transient detection logic."""

    def test_timeout_error_is_transient(self):
        assert is_transient(TimeoutError("timed out")) is True

    def test_connection_error_is_transient(self):
        assert is_transient(ConnectionError("refused")) is True

    def test_value_error_not_transient(self):
        assert is_transient(ValueError("bad input")) is False

    @pytest.mark.parametrize("code", [429, 500, 502, 503])
    def test_transient_status_codes(self, code):
        exc = Exception("provider said no")
        exc.status_code = code  # type: ignore[attr-defined]
        assert is_transient(exc) is True

    def test_status_attribute(self):
        exc = Exception("bad gateway")
        exc.status = 502  # type: ignore[attr-defined]
        assert is_transient(exc) is True

    @pytest.mark.parametrize("code", [400, 401, 404])
    def test_client_errors_not_transient(self, code):
        exc = Exception("client error")
        exc.status_code = code  # type: ignore[attr-defined]
        assert is_transient(exc) is False


class TestIsConnectionFailure:
    def test_builtin_network_errors(self):
        assert is_connection_failure(ConnectionError("refused"))
        assert is_connection_failure(TimeoutError("slow"))

    def test_sdk_error_matched_by_name(self):
        class APIConnectionError(Exception):
            pass

        class SubclassedError(APIConnectionError):
            pass

        assert is_connection_failure(APIConnectionError("down"))
        assert is_connection_failure(SubclassedError("down"))

    def test_rate_limit_is_not_connection_failure(self):
        exc = Exception("rate limited")
        exc.status_code = 429  # type: ignore[attr-defined]
        assert not is_connection_failure(exc)


class TestRetryPolicy:
    def test_delay_within_exponential_cap(self):
        policy = RetryPolicy(base_delay=1.0, max_delay=30.0)
        rng = random.Random(3)
        for attempt in range(8):
            assert 0 <= policy.delay(attempt, rng) <= min(2 ** attempt, 30.0)

    def test_zero_base_delay(self):
        assert RetryPolicy(base_delay=0.0).delay(5, random.Random(1)) == 0.0


class TestRetryWithBackoff:
    """Test retry_with_backoff async retry logic."""

    @pytest.mark.asyncio
    async def test_success_no_retry(self):
        """Immediate success returns result with 0 retries."""
        call_count = 0

        async def factory():
            nonlocal call_count
            call_count += 1
            return "ok"

        outcome = await retry_with_backoff(factory, RetryPolicy(max_retries=3))
        assert outcome.result == "ok"
        assert outcome.retries_used == 0
        assert outcome.error_types == []
        assert call_count == 1

    @pytest.mark.asyncio
    async def test_retry_on_timeout_then_success(self):
        """TimeoutError triggers retry; second call succeeds."""
        call_count = 0
        sleep = _RecordingSleep()

        async def factory():
            nonlocal call_count
            call_count += 1
            if call_count == 1:
                raise TimeoutError("first call timed out")
            return "ok"

        outcome = await retry_with_backoff(
            factory, RetryPolicy(max_retries=3, base_delay=0.5), sleep=sleep
        )
        assert outcome.result == "ok"
        assert outcome.retries_used == 1
        assert outcome.error_types == ["TimeoutError"]
        assert len(sleep.delays) == 1
        assert 0 <= sleep.delays[0] <= 0.5

    @pytest.mark.asyncio
    async def test_retry_on_status_code_429(self):
        """Exception with status_code=429 triggers retry."""
        call_count = 0

        async def factory():
            nonlocal call_count
            call_count += 1
            if call_count == 1:
                exc = Exception("rate limited")
                exc.status_code = 429  # type: ignore[attr-defined]
                raise exc
            return "ok"

        outcome = await retry_with_backoff(factory, RetryPolicy(), sleep=_RecordingSleep())
        assert outcome.result == "ok"
        assert outcome.retries_used == 1

    @pytest.mark.asyncio
    async def test_non_transient_raises_immediately(self):
        """ValueError (non-transient) raises without retry."""
        call_count = 0

        async def factory():
            nonlocal call_count
            call_count += 1
            raise ValueError("bad input")

        with pytest.raises(ValueError, match="bad input"):
            await retry_with_backoff(factory, RetryPolicy(), sleep=_RecordingSleep())
        assert call_count == 1

    @pytest.mark.asyncio
    async def test_retries_exhausted_raises(self):
        """All retries fail with transient error -- raises last exception."""
        call_count = 0
        sleep = _RecordingSleep()

        async def factory():
            nonlocal call_count
            call_count += 1
            raise TimeoutError(f"attempt {call_count}")

        with pytest.raises(TimeoutError, match="attempt 4"):
            await retry_with_backoff(factory, RetryPolicy(max_retries=3), sleep=sleep)

        # 1 initial + 3 retries = 4 total calls
        assert call_count == 4
        assert len(sleep.delays) == 3

    @pytest.mark.asyncio
    async def test_max_retries_zero_no_retry(self):
        """max_retries=0 means only one attempt, no retries."""
        call_count = 0

        async def factory():
            nonlocal call_count
            call_count += 1
            raise TimeoutError("fail")

        with pytest.raises(TimeoutError):
            await retry_with_backoff(factory, RetryPolicy(max_retries=0))
        assert call_count == 1

    @pytest.mark.asyncio
    async def test_delays_respect_max_delay(self):
        sleep = _RecordingSleep()

        async def factory():
            raise ConnectionError("refused")

        with pytest.raises(ConnectionError):
            await retry_with_backoff(
                factory,
                RetryPolicy(max_retries=6, base_delay=1.0, max_delay=2.0),
                rng=random.Random(0),
                sleep=sleep,
            )
        assert len(sleep.delays) == 6
        assert all(0 <= d <= 2.0 for d in sleep.delays)
