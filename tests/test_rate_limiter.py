"""Tests for the sliding window rate limiter."""

import asyncio

import pytest

from smartflash_llm.core import RateLimitConfig, RateLimiter
from smartflash_llm.errors import ConfigurationError, RequestCancelledError


@pytest.fixture
def limiter(timer) -> RateLimiter:
    return RateLimiter(RateLimitConfig(requests=2, per_seconds=1), clock=timer.now, sleep=timer.sleep)


class TestRateLimiter:
    """Throttling within and across windows."""

    @pytest.mark.asyncio
    async def test_under_quota_does_not_wait(self, limiter: RateLimiter, timer) -> None:
        assert await limiter.acquire() == 0.0
        assert await limiter.acquire() == 0.0
        assert timer.sleeps == []

    @pytest.mark.asyncio
    async def test_third_request_in_window_waits(self, limiter: RateLimiter, timer) -> None:
        await limiter.acquire()
        timer.advance(0.25)
        await limiter.acquire()
        timer.advance(0.25)

        waited = await limiter.acquire()

        assert waited == pytest.approx(0.5)
        assert timer.sleeps == [pytest.approx(0.5)]
        assert limiter.in_window == 2

    @pytest.mark.asyncio
    async def test_request_after_window_does_not_wait(self, limiter: RateLimiter, timer) -> None:
        await limiter.acquire()
        await limiter.acquire()
        timer.advance(1.0)

        assert await limiter.acquire() == 0.0
        assert timer.sleeps == []

    @pytest.mark.asyncio
    async def test_reports_waits(self, timer) -> None:
        waits = []
        limiter = RateLimiter(
            RateLimitConfig(requests=1, per_seconds=2),
            on_wait=waits.append,
            clock=timer.now,
            sleep=timer.sleep,
        )
        await limiter.acquire()
        await limiter.acquire()

        assert waits == [pytest.approx(2.0)]

    @pytest.mark.asyncio
    async def test_concurrent_waiters_never_overfill_window(self) -> None:
        limiter = RateLimiter(RateLimitConfig(requests=2, per_seconds=0.1))
        loop = asyncio.get_running_loop()
        admitted = []

        async def worker() -> None:
            await limiter.acquire()
            admitted.append(loop.time())

        start = loop.time()
        await asyncio.gather(*(worker() for _ in range(5)))

        admitted.sort()
        assert admitted[-1] - start >= 0.2 - 0.02
        for i in range(2, len(admitted)):
            assert admitted[i] - admitted[i - 2] >= 0.1 - 0.02

    def test_rejects_invalid_config(self) -> None:
        with pytest.raises(ConfigurationError):
            RateLimitConfig(requests=0, per_seconds=1)
        with pytest.raises(ConfigurationError):
            RateLimitConfig(requests=1, per_seconds=0)

    @pytest.mark.asyncio
    async def test_reset_clears_window(self, limiter: RateLimiter, timer) -> None:
        await limiter.acquire()
        await limiter.acquire()
        limiter.reset()

        assert limiter.in_window == 0
        assert await limiter.acquire() == 0.0


class TestAbort:
    """Caller cancellation while throttled."""

    @pytest.mark.asyncio
    async def test_abort_interrupts_wait(self) -> None:
        limiter = RateLimiter(RateLimitConfig(requests=1, per_seconds=2.0))
        loop = asyncio.get_running_loop()
        abort = asyncio.Event()
        await limiter.acquire(abort)
        loop.call_later(0.05, abort.set)

        started = loop.time()
        with pytest.raises(RequestCancelledError):
            await limiter.acquire(abort)

        assert loop.time() - started < 1.0
        assert limiter.in_window == 1

    @pytest.mark.asyncio
    async def test_abort_already_set_records_nothing(self, limiter: RateLimiter, timer) -> None:
        abort = asyncio.Event()
        abort.set()

        with pytest.raises(RequestCancelledError):
            await limiter.acquire(abort)

        assert limiter.in_window == 0
        assert timer.sleeps == []

    @pytest.mark.asyncio
    async def test_unset_abort_waits_normally(self, limiter: RateLimiter, timer) -> None:
        abort = asyncio.Event()
        await limiter.acquire(abort)
        await limiter.acquire(abort)

        assert await limiter.acquire(abort) == pytest.approx(1.0)
        assert timer.sleeps == [pytest.approx(1.0)]
