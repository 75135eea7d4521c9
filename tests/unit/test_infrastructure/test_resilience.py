"""Unit tests for with_retry and CircuitBreaker."""

import asyncio
import random

import pytest
from unittest.mock import AsyncMock, MagicMock

from leadcrawler.exceptions import CircuitOpenError
from leadcrawler.infrastructure.resilience import (
    CircuitBreaker,
    RetryOptions,
    base_delay,
    compute_delay,
    is_retryable_error,
    retry,
    with_retry,
)
from leadcrawler.models import CircuitState


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class TestIsRetryableError:
    """Tests for error classification."""

    def test_connection_reset_is_retryable(self):
        """Test allow-listed network errors are retried."""
        assert is_retryable_error(Exception("net::ERR_CONNECTION_RESET at https://x"))
        assert is_retryable_error(Exception("Navigation timeout of 30000 ms exceeded"))

    def test_timeout_types_are_retryable(self):
        """Test builtin timeout and connection types are retried."""
        assert is_retryable_error(asyncio.TimeoutError())
        assert is_retryable_error(ConnectionResetError("reset"))

    def test_certificate_errors_are_not_retryable(self):
        """Test deny-list wins even for network-looking messages."""
        assert not is_retryable_error(Exception("net::ERR_CERT_AUTHORITY_INVALID"))
        assert not is_retryable_error(Exception("net::ERR_SSL_PROTOCOL_ERROR timeout"))

    def test_malformed_url_is_not_retryable(self):
        """Test malformed URLs fail fast."""
        assert not is_retryable_error(Exception("Cannot navigate to invalid URL"))

    def test_unclassified_network_error_defaults_to_retryable(self):
        """Test unknown net:: errors are retried."""
        assert is_retryable_error(Exception("net::ERR_SOMETHING_NEW"))

    def test_plain_error_is_not_retryable(self):
        """Test errors unrelated to the network are not retried."""
        assert not is_retryable_error(ValueError("bad selector"))


class TestRetryDelay:
    """Tests for backoff delay computation."""

    def test_base_delay_is_exponential_and_capped(self):
        """Test initial * multiplier^n capped at max_delay."""
        options = RetryOptions(initial_delay=1.0, backoff_multiplier=2.0, max_delay=5.0)

        assert base_delay(0, options) == 1.0
        assert base_delay(1, options) == 2.0
        assert base_delay(2, options) == 4.0
        assert base_delay(3, options) == 5.0
        assert base_delay(10, options) == 5.0

    def test_jittered_delay_within_bounds(self):
        """Test every delay lies within 25% of the capped base."""
        options = RetryOptions(initial_delay=0.5, backoff_multiplier=3.0, max_delay=20.0)
        rng = random.Random(42)

        for attempt in range(8):
            bounded = base_delay(attempt, options)
            for _ in range(200):
                delay = compute_delay(attempt, options, rng)
                assert 0.75 * bounded - 1e-9 <= delay <= 1.25 * bounded + 1e-9

    def test_delay_never_negative(self):
        """Test oversized jitter is clamped at zero."""
        options = RetryOptions(initial_delay=1.0, jitter=2.0)
        rng = random.Random(7)

        assert all(compute_delay(0, options, rng) >= 0 for _ in range(100))


class TestWithRetry:
    """Tests for the retry executor."""

    @pytest.mark.asyncio
    async def test_returns_first_success(self):
        """Test no retry when the first attempt succeeds."""
        operation = AsyncMock(return_value="ok")
        sleep = AsyncMock()

        result = await with_retry(operation, RetryOptions(), sleep=sleep)

        assert result == "ok"
        assert operation.await_count == 1
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_retries_transient_errors(self):
        """Test transient failures are retried until success."""
        operation = AsyncMock(side_effect=[
            Exception("net::ERR_CONNECTION_RESET"),
            asyncio.TimeoutError(),
            "ok",
        ])
        sleep = AsyncMock()
        attempts = []

        result = await with_retry(
            operation,
            RetryOptions(max_retries=3, initial_delay=1.0),
            on_retry=attempts.append,
            sleep=sleep,
        )

        assert result == "ok"
        assert operation.await_count == 3
        assert sleep.await_count == 2
        assert [a.attempt for a in attempts] == [0, 1]
        first_delay = sleep.await_args_list[0].args[0]
        assert 0.75 <= first_delay <= 1.25

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self):
        """Test the last error is re-raised once attempts run out."""
        operation = AsyncMock(side_effect=Exception("net::ERR_CONNECTION_RESET"))
        sleep = AsyncMock()

        with pytest.raises(Exception, match="ERR_CONNECTION_RESET"):
            await with_retry(operation, RetryOptions(max_retries=2), sleep=sleep)

        assert operation.await_count == 3
        assert sleep.await_count == 2

    @pytest.mark.asyncio
    async def test_permanent_error_fails_fast(self):
        """Test deny-listed errors are not retried."""
        operation = AsyncMock(side_effect=Exception("net::ERR_CERT_DATE_INVALID"))
        sleep = AsyncMock()

        with pytest.raises(Exception):
            await with_retry(operation, RetryOptions(max_retries=5), sleep=sleep)

        assert operation.await_count == 1
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_custom_retry_predicate(self):
        """Test retry_on overrides the default classification."""
        operation = AsyncMock(side_effect=[ValueError("flaky"), "ok"])
        options = RetryOptions(max_retries=1, retry_on=lambda e: isinstance(e, ValueError))

        result = await with_retry(operation, options, sleep=AsyncMock())

        assert result == "ok"

    @pytest.mark.asyncio
    async def test_retry_decorator(self):
        """Test decorator form retries the wrapped coroutine."""
        calls = []

        @retry(RetryOptions(max_retries=2, initial_delay=0.0))
        async def flaky():
            calls.append(1)
            if len(calls) < 2:
                raise ConnectionError("reset")
            return len(calls)

        assert await flaky() == 2


class TestCircuitBreaker:
    """Tests for the circuit breaker state machine."""

    def test_opens_exactly_at_threshold(self):
        """Test is_open flips on the threshold-th consecutive failure."""
        breaker = CircuitBreaker(threshold=3, reset_timeout=60.0, clock=FakeClock())

        breaker.record_failure()
        assert not breaker.is_open()
        breaker.record_failure()
        assert not breaker.is_open()
        breaker.record_failure()
        assert breaker.is_open()
        assert breaker.state == CircuitState.OPEN

    def test_success_resets_failure_count(self):
        """Test one success while closed resets the count to zero."""
        breaker = CircuitBreaker(threshold=3, clock=FakeClock())

        breaker.record_failure()
        breaker.record_failure()
        breaker.record_success()

        assert breaker.failures == 0
        breaker.record_failure()
        breaker.record_failure()
        assert not breaker.is_open()

    def test_half_open_after_reset_timeout(self):
        """Test an open breaker stops reporting open once the timeout elapses."""
        clock = FakeClock()
        breaker = CircuitBreaker(threshold=2, reset_timeout=60.0, clock=clock)
        breaker.record_failure()
        breaker.record_failure()

        clock.advance(59.0)
        assert breaker.is_open()
        assert breaker.retry_after() == pytest.approx(1.0)

        clock.advance(1.0)
        assert not breaker.is_open()
        assert breaker.state == CircuitState.HALF_OPEN

    def test_half_open_success_closes(self):
        """Test a successful probe closes the breaker."""
        clock = FakeClock()
        breaker = CircuitBreaker(threshold=1, reset_timeout=10.0, clock=clock)
        breaker.record_failure()
        clock.advance(10.0)
        breaker.is_open()

        breaker.record_success()

        assert breaker.state == CircuitState.CLOSED
        assert breaker.failures == 0

    def test_half_open_failure_reopens(self):
        """Test a failed probe re-opens the breaker immediately."""
        clock = FakeClock()
        breaker = CircuitBreaker(threshold=3, reset_timeout=10.0, clock=clock)
        for _ in range(3):
            breaker.record_failure()
        clock.advance(10.0)
        assert not breaker.is_open()

        breaker.record_failure()

        assert breaker.is_open()

    @pytest.mark.asyncio
    async def test_execute_short_circuits_when_open(self):
        """Test execute raises CircuitOpenError without calling fn."""
        breaker = CircuitBreaker(threshold=1, reset_timeout=30.0, clock=FakeClock())
        breaker.record_failure()
        fn = AsyncMock()

        with pytest.raises(CircuitOpenError) as exc_info:
            await breaker.execute(fn)

        fn.assert_not_awaited()
        assert exc_info.value.retry_after == pytest.approx(30.0)

    @pytest.mark.asyncio
    async def test_execute_records_outcomes(self):
        """Test execute counts failures and resets on success."""
        breaker = CircuitBreaker(threshold=5, clock=FakeClock())

        with pytest.raises(RuntimeError):
            await breaker.execute(AsyncMock(side_effect=RuntimeError("boom")))
        assert breaker.failures == 1

        assert await breaker.execute(AsyncMock(return_value=42)) == 42
        assert breaker.failures == 0

    def test_get_state_and_reset(self):
        """Test snapshot contents and manual reset."""
        breaker = CircuitBreaker(threshold=1, clock=FakeClock(), name="maps")
        breaker.record_failure()

        state = breaker.get_state()
        assert state["state"] == "open"
        assert state["failures"] == 1

        breaker.reset()
        assert breaker.state == CircuitState.CLOSED
        assert not breaker.is_open()
