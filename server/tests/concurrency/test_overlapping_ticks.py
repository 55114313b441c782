"""Concurrency tests for worker tick scheduling."""

import asyncio

import pytest

from roombroker.core.rate_limit import SlidingWindowRateLimiter
from roombroker.workers.base import BaseWorker


class SlowWorker(BaseWorker):
    """Each tick takes several timer intervals."""

    def __init__(self, tick_seconds: float, **kwargs):
        super().__init__("slow", **kwargs)
        self.tick_seconds = tick_seconds
        self.active = 0
        self.max_active = 0
        self.completed = 0

    async def process(self) -> None:
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(self.tick_seconds)
            self.completed += 1
        finally:
            self.active -= 1


class FlakyWorker(BaseWorker):
    def __init__(self, **kwargs):
        super().__init__("flaky", **kwargs)
        self.calls = 0

    async def process(self) -> None:
        self.calls += 1
        if self.calls % 2:
            raise RuntimeError("transient failure")


@pytest.mark.asyncio
async def test_ticks_never_overlap():
    """Timer fires while a tick is still running: the new tick is skipped, not queued."""
    worker = SlowWorker(tick_seconds=0.05, interval_seconds=0.01)

    await worker.start()
    await asyncio.sleep(0.3)
    await worker.stop()

    assert worker.max_active == 1
    assert worker.completed >= 2
    assert worker.stats.skipped_ticks > 0
    assert worker.active == 0
    assert not worker.processing


@pytest.mark.asyncio
async def test_concurrent_manual_runs_execute_once():
    worker = SlowWorker(tick_seconds=0.05)

    results = await asyncio.gather(*(worker.run_once() for _ in range(5)))

    assert sorted(results) == [False, False, False, False, True]
    assert worker.completed == 1
    assert worker.stats.skipped_ticks == 4


@pytest.mark.asyncio
async def test_failures_do_not_stop_the_timer():
    worker = FlakyWorker(interval_seconds=0.01)

    await worker.start()
    await asyncio.sleep(0.15)
    running = worker.running
    await worker.stop()

    assert running
    assert worker.stats.failures >= 2
    assert worker.stats.successes >= 2


@pytest.mark.asyncio
async def test_stop_cancels_in_flight_tick():
    worker = SlowWorker(tick_seconds=60, interval_seconds=3600)

    await worker.start()
    await asyncio.sleep(0.01)
    assert worker.processing

    await asyncio.wait_for(worker.stop(), timeout=1)

    assert worker.completed == 0
    assert worker.active == 0
    assert not worker.processing


@pytest.mark.asyncio
async def test_rate_limiter_shared_by_concurrent_callers():
    limiter = SlidingWindowRateLimiter(max_events=3, window_seconds=60)

    async def attempt():
        await asyncio.sleep(0)
        return limiter.try_acquire()

    results = await asyncio.gather(*(attempt() for _ in range(10)))

    assert results.count(True) == 3
    assert limiter.remaining() == 0
