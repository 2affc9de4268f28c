"""Tests for the process-wide token bucket."""

from __future__ import annotations

import asyncio

import pytest

from push_dispatch.core.rate_limiter import TokenBucket
from tests.fixtures.fakes import FakeClock


def _bucket(clock: FakeClock, *, capacity: float = 5, rate: float = 10) -> TokenBucket:
    return TokenBucket(capacity=capacity, refill_rate_per_second=rate, clock=clock, sleep=clock.sleep)


class TestConstruction:
    @pytest.mark.parametrize(("capacity", "rate"), [(0, 10), (-1, 10), (5, 0), (5, -2)])
    def test_rejects_non_positive_settings(self, capacity: float, rate: float) -> None:
        with pytest.raises(ValueError):
            _ = TokenBucket(capacity=capacity, refill_rate_per_second=rate)

    def test_starts_full(self) -> None:
        clock = FakeClock()
        bucket = _bucket(clock, capacity=7)
        assert bucket.available_tokens == pytest.approx(7)
        assert bucket.capacity == 7
        assert bucket.refill_rate == 10


class TestAcquire:
    async def test_burst_up_to_capacity_without_waiting(self) -> None:
        clock = FakeClock()
        bucket = _bucket(clock, capacity=5)

        for _ in range(5):
            await bucket.acquire()

        assert clock.sleeps == []
        assert bucket.available_tokens == pytest.approx(0)

    async def test_waits_exactly_until_next_token(self) -> None:
        clock = FakeClock()
        bucket = _bucket(clock, capacity=1, rate=4)

        await bucket.acquire()
        await bucket.acquire()

        assert clock.sleeps == [pytest.approx(0.25)]

    async def test_partial_refill_shortens_wait(self) -> None:
        clock = FakeClock()
        bucket = _bucket(clock, capacity=1, rate=10)

        await bucket.acquire()
        clock.advance(0.06)
        await bucket.acquire()

        assert clock.sleeps == [pytest.approx(0.04)]

    async def test_refill_is_capped_at_capacity(self) -> None:
        clock = FakeClock()
        bucket = _bucket(clock, capacity=3, rate=10)

        await bucket.acquire()
        clock.advance(60)

        assert bucket.available_tokens == pytest.approx(3)

    async def test_sustained_rate_matches_refill(self) -> None:
        """25 tokens from a bucket of 5 refilling 10/s take 2 simulated seconds."""
        clock = FakeClock()
        start = clock.now
        bucket = _bucket(clock, capacity=5, rate=10)

        for _ in range(25):
            await bucket.acquire()

        assert clock.now - start == pytest.approx(2.0)

    async def test_concurrent_acquirers_are_all_served(self) -> None:
        clock = FakeClock()
        start = clock.now
        bucket = _bucket(clock, capacity=2, rate=20)

        _ = await asyncio.gather(*(bucket.acquire() for _ in range(12)))

        assert clock.now - start == pytest.approx(0.5)

    async def test_waiters_are_served_in_arrival_order(self) -> None:
        clock = FakeClock()
        bucket = _bucket(clock, capacity=1, rate=100)
        order: list[int] = []

        async def acquire(index: int) -> None:
            await bucket.acquire()
            order.append(index)

        tasks = [asyncio.create_task(acquire(index)) for index in range(6)]
        _ = await asyncio.gather(*tasks)

        assert order == list(range(6))

    async def test_real_clock_throttles(self) -> None:
        bucket = TokenBucket(capacity=1, refill_rate_per_second=50)
        loop = asyncio.get_running_loop()
        started = loop.time()

        for _ in range(3):
            await bucket.acquire()

        assert loop.time() - started >= 0.035
