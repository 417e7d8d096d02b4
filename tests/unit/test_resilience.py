"""
Unit tests for retry and circuit breaker utilities.
"""

import pytest
from unittest.mock import AsyncMock, patch

from dora_tracker.utils.resilience import (
    CircuitBreaker,
    CircuitBreakerOpenError,
    CircuitState,
    retry_with_backoff,
)


class TransientError(Exception):
    pass


@pytest.fixture(autouse=True)
def no_backoff():
    with patch("dora_tracker.utils.resilience.asyncio.sleep", new=AsyncMock()) as sleep:
        yield sleep


class TestRetryWithBackoff:
    """Test the retry decorator."""

    @pytest.mark.asyncio
    async def test_retries_listed_exceptions(self, no_backoff):
        calls = AsyncMock(side_effect=[TransientError(), TransientError(), "ok"])

        @retry_with_backoff(max_retries=3, base_delay=1.0, exceptions=(TransientError,))
        async def operation():
            return await calls()

        assert await operation() == "ok"
        assert calls.await_count == 3
        assert [c.args[0] for c in no_backoff.await_args_list] == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_other_exceptions_propagate_immediately(self):
        calls = AsyncMock(side_effect=ValueError("bad input"))

        @retry_with_backoff(max_retries=3, exceptions=(TransientError,))
        async def operation():
            return await calls()

        with pytest.raises(ValueError):
            await operation()
        assert calls.await_count == 1

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self):
        calls = AsyncMock(side_effect=TransientError())

        @retry_with_backoff(max_retries=2, exceptions=(TransientError,))
        async def operation():
            return await calls()

        with pytest.raises(TransientError):
            await operation()
        assert calls.await_count == 2


class TestCircuitBreaker:
    """Test circuit breaker state transitions."""

    @pytest.mark.asyncio
    async def test_opens_after_threshold(self):
        breaker = CircuitBreaker(failure_threshold=2, counted_exceptions=(TransientError,))
        failing = AsyncMock(side_effect=TransientError())

        for _ in range(2):
            with pytest.raises(TransientError):
                await breaker.call(failing)

        assert breaker.get_state() == CircuitState.OPEN
        with pytest.raises(CircuitBreakerOpenError):
            await breaker.call(AsyncMock(return_value="ok"))

    @pytest.mark.asyncio
    async def test_uncounted_exceptions_do_not_trip(self):
        breaker = CircuitBreaker(failure_threshold=1, counted_exceptions=(TransientError,))

        with pytest.raises(ValueError):
            await breaker.call(AsyncMock(side_effect=ValueError()))

        assert breaker.get_state() == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_half_open_recovers(self):
        breaker = CircuitBreaker(failure_threshold=1, timeout=0, half_open_max_calls=1)
        with pytest.raises(TransientError):
            await breaker.call(AsyncMock(side_effect=TransientError()))
        breaker.last_failure_time -= 1

        assert await breaker.call(AsyncMock(return_value="ok")) == "ok"
        assert breaker.get_state() == CircuitState.CLOSED

    def test_reset(self):
        breaker = CircuitBreaker()
        breaker.state = CircuitState.OPEN
        breaker.failure_count = 9

        breaker.reset()

        assert breaker.get_state() == CircuitState.CLOSED
        assert breaker.failure_count == 0
