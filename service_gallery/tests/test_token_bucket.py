"""
Unit tests for the upstream token bucket.
"""

import pytest

from service_gallery.app.ratelimit import TokenBucket


class FakeClock:
    """Manual clock whose sleep advances time."""

    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def __call__(self):
        return self.now

    async def sleep(self, delay):
        self.sleeps.append(delay)
        self.now += delay


class TestTokenBucket:
    """Test cases for TokenBucket."""

    @pytest.mark.asyncio
    async def test_first_request_is_immediate(self):
        clock = FakeClock()
        bucket = TokenBucket.from_interval(0.5, clock=clock, sleep=clock.sleep)

        assert await bucket.acquire() == 0.0
        assert clock.sleeps == []

    @pytest.mark.asyncio
    async def test_requests_are_spaced_by_interval(self):
        clock = FakeClock()
        bucket = TokenBucket.from_interval(0.5, clock=clock, sleep=clock.sleep)

        for _ in range(3):
            await bucket.acquire()

        assert clock.sleeps == pytest.approx([0.5, 0.5])
        assert clock.now == pytest.approx(1.0)

    @pytest.mark.asyncio
    async def test_idle_time_refills_up_to_capacity(self):
        clock = FakeClock()
        bucket = TokenBucket(rate=2.0, capacity=2, clock=clock, sleep=clock.sleep)

        await bucket.acquire()
        await bucket.acquire()
        clock.now += 10.0
        await bucket.acquire()
        await bucket.acquire()
        assert clock.sleeps == []

        await bucket.acquire()
        assert clock.sleeps == pytest.approx([0.5])

    @pytest.mark.asyncio
    async def test_zero_interval_disables_pacing(self):
        clock = FakeClock()
        bucket = TokenBucket.from_interval(0, clock=clock, sleep=clock.sleep)

        for _ in range(10):
            await bucket.acquire()

        assert clock.sleeps == []
        assert bucket.get_state()["rate"] == 0.0
