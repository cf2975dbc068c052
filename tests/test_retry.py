"""Tests for retry and rate limiting helpers."""
import pytest

from examforge.integrations.errors import IntegrationError
from examforge.integrations.rate_limit import RateLimiter
from examforge.integrations.retry import RetryManager


class FakeSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


@pytest.mark.asyncio
async def test_with_retry_stops_after_max_attempts():
    """The operation runs exactly max_attempts times and the last error propagates."""
    sleep = FakeSleep()
    manager = RetryManager(sleep=sleep)
    calls = []

    async def operation():
        calls.append(1)
        raise IntegrationError(f"boom {len(calls)}", "HTTP_ERROR", retryable=True)

    with pytest.raises(IntegrationError, match="boom 3"):
        await manager.with_retry(operation, max_attempts=3, initial_delay=1.0, backoff_multiplier=2.0)

    assert len(calls) == 3
    assert sleep.delays == [1.0, 2.0]


@pytest.mark.asyncio
async def test_with_retry_returns_first_success():
    sleep = FakeSleep()
    manager = RetryManager(sleep=sleep)
    calls = []

    async def operation():
        calls.append(1)
        if len(calls) < 2:
            raise ConnectionError("reset")
        return "ok"

    assert await manager.with_retry(operation, max_attempts=5) == "ok"
    assert len(calls) == 2
    assert sleep.delays == [1.0]


@pytest.mark.asyncio
async def test_with_retry_does_not_repeat_non_retryable_errors():
    manager = RetryManager(sleep=FakeSleep())
    calls = []

    async def operation():
        calls.append(1)
        raise IntegrationError("bad request", "HTTP_ERROR", retryable=False)

    with pytest.raises(IntegrationError):
        await manager.with_retry(operation, max_attempts=3)
    assert len(calls) == 1


def test_rate_limiter_sliding_window():
    """Three requests fit a limit of three; the fourth is refused until the window slides."""
    now = [100.0]
    limiter = RateLimiter(clock=lambda: now[0])

    results = [limiter.check_limit("k", 3, 60.0) for _ in range(4)]
    assert results == [True, True, True, False]

    # Other keys are independent
    assert limiter.check_limit("other", 3, 60.0)

    now[0] += 60.0
    assert limiter.check_limit("k", 3, 60.0)


def test_rate_limiter_reset():
    limiter = RateLimiter(clock=lambda: 0.0)
    assert limiter.check_limit("k", 1, 10.0)
    assert not limiter.check_limit("k", 1, 10.0)

    limiter.reset("k")
    assert limiter.check_limit("k", 1, 10.0)


@pytest.mark.asyncio
async def test_rate_limiter_rejects_non_positive_limit():
    limiter = RateLimiter(clock=lambda: 0.0, sleep=FakeSleep())

    with pytest.raises(ValueError):
        limiter.check_limit("k", 0, 10.0)
    with pytest.raises(ValueError):
        await limiter.wait_for_slot("k", -1, 10.0)


@pytest.mark.asyncio
async def test_wait_for_slot_sleeps_until_oldest_request_expires():
    now = [0.0]
    delays = []

    async def sleep(delay):
        delays.append(delay)
        now[0] += delay

    limiter = RateLimiter(clock=lambda: now[0], sleep=sleep)
    await limiter.wait_for_slot("k", 2, 10.0)
    now[0] = 4.0
    await limiter.wait_for_slot("k", 2, 10.0)
    await limiter.wait_for_slot("k", 2, 10.0)

    assert delays == [6.0]
    assert now[0] == 10.0
