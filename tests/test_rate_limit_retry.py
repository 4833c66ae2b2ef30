"""Window rate limiter and retry policy under a virtual clock."""
import asyncio
import random

import pytest

from trustsignal.clock import VirtualClock
from trustsignal.connectors.rate_limit import HOUR, MINUTE, WindowRateLimiter
from trustsignal.connectors.retry import RetryPolicy
from trustsignal.errors import PermanentProviderError, TransientProviderError


# ── Rate limiter ──

def test_budget_must_be_positive():
    with pytest.raises(ValueError):
        WindowRateLimiter(0, MINUTE)


@pytest.mark.asyncio
async def test_within_budget_never_waits():
    clock = VirtualClock()
    limiter = WindowRateLimiter(3, MINUTE, clock=clock)

    waits = [await limiter.acquire() for _ in range(3)]

    assert waits == [0.0, 0.0, 0.0]
    assert clock.sleeps == []
    assert limiter.remaining == 0


@pytest.mark.asyncio
async def test_exhausted_budget_blocks_until_window_resets():
    clock = VirtualClock()
    limiter = WindowRateLimiter(2, MINUTE, clock=clock)

    await limiter.acquire()
    clock.advance(15)
    await limiter.acquire()
    waited = await limiter.acquire()

    assert waited == pytest.approx(45.0)
    assert clock.sleeps == [pytest.approx(45.0)]
    assert limiter.requests_in_window == 1


@pytest.mark.asyncio
async def test_wait_is_bounded_by_max_wait():
    clock = VirtualClock()
    limiter = WindowRateLimiter(1, HOUR, clock=clock, max_wait_seconds=60)

    await limiter.acquire()
    waited = await limiter.acquire()

    assert waited == 60
    assert clock.total_slept == 60


@pytest.mark.asyncio
async def test_window_expiry_resets_budget():
    clock = VirtualClock()
    limiter = WindowRateLimiter(1, MINUTE, clock=clock)

    await limiter.acquire()
    clock.advance(61)
    waited = await limiter.acquire()

    assert waited == 0.0
    assert clock.sleeps == []


@pytest.mark.asyncio
async def test_concurrent_callers_share_one_budget():
    clock = VirtualClock()
    limiter = WindowRateLimiter(2, MINUTE, clock=clock)

    waits = await asyncio.gather(*(limiter.acquire() for _ in range(4)))

    assert sorted(waits) == [0.0, 0.0, 0.0, 60.0]
    assert clock.total_slept == 60.0


# ── Retry policy ──

async def _always_down():
    raise TransientProviderError("test", "HTTP 503", 503)


@pytest.mark.asyncio
async def test_backoff_doubles_per_attempt():
    clock = VirtualClock()
    policy = RetryPolicy(max_attempts=5, base_delay=1.0, max_jitter=0.0, clock=clock)

    with pytest.raises(TransientProviderError):
        await policy.run(_always_down)

    assert clock.sleeps == [1.0, 2.0, 4.0, 8.0]


@pytest.mark.asyncio
async def test_backoff_is_capped_at_max_delay():
    clock = VirtualClock()
    policy = RetryPolicy(max_attempts=4, base_delay=10.0, max_jitter=0.0, max_delay=25.0, clock=clock)

    with pytest.raises(TransientProviderError):
        await policy.run(_always_down)

    assert clock.sleeps == [10.0, 20.0, 25.0]


@pytest.mark.asyncio
async def test_jitter_is_bounded_and_seeded():
    sleeps = []
    for _ in range(2):
        clock = VirtualClock()
        policy = RetryPolicy(max_attempts=6, base_delay=1.0, max_jitter=0.5, clock=clock, rng=random.Random(3))
        with pytest.raises(TransientProviderError):
            await policy.run(_always_down)
        sleeps.append(clock.sleeps)

    first, second = sleeps
    assert first == second
    for n, delay in enumerate(first):
        assert 2 ** n <= delay <= 2 ** n + 0.5


@pytest.mark.asyncio
async def test_transient_errors_are_retried_until_success():
    clock = VirtualClock()
    policy = RetryPolicy(max_attempts=3, base_delay=1.0, max_jitter=0.0, clock=clock)
    calls = []

    async def flaky():
        calls.append(1)
        if len(calls) < 3:
            raise TransientProviderError("test", "HTTP 503", 503)
        return "ok"

    assert await policy.run(flaky, provider="test") == "ok"
    assert len(calls) == 3
    assert clock.sleeps == [1.0, 2.0]


@pytest.mark.asyncio
async def test_exhaustion_reraises_last_transient_error():
    clock = VirtualClock()
    policy = RetryPolicy(max_attempts=2, base_delay=0.5, max_jitter=0.0, clock=clock)

    async def always_down():
        raise TransientProviderError("test", "HTTP 502", 502)

    with pytest.raises(TransientProviderError) as exc:
        await policy.run(always_down, provider="test")

    assert exc.value.status_code == 502
    assert clock.sleeps == [0.5]


@pytest.mark.asyncio
async def test_permanent_errors_are_not_retried():
    clock = VirtualClock()
    policy = RetryPolicy(max_attempts=5, clock=clock)
    calls = []

    async def rejected():
        calls.append(1)
        raise PermanentProviderError("test", "HTTP 400", 400)

    with pytest.raises(PermanentProviderError):
        await policy.run(rejected)

    assert len(calls) == 1
    assert clock.sleeps == []
