"""Tests for the bounded concurrency executor."""

from __future__ import annotations

import asyncio

import pytest

from push_dispatch.core.executor import BoundedExecutor


class ConcurrencyTracker:
    def __init__(self) -> None:
        self.active: int = 0
        self.peak: int = 0

    async def work(self, delay: float, fail: bool = False) -> str:
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            await asyncio.sleep(delay)
            if fail:
                msg = "boom"
                raise RuntimeError(msg)
            return "done"
        finally:
            self.active -= 1


def test_rejects_zero_slots() -> None:
    with pytest.raises(ValueError, match="at least 1"):
        _ = BoundedExecutor(0)


async def test_returns_result_and_passes_arguments() -> None:
    executor = BoundedExecutor(2)

    async def add(a: int, b: int, *, scale: int = 1) -> int:
        return (a + b) * scale

    assert await executor.run(add, 2, 3, scale=10) == 50
    assert executor.in_flight == 0


async def test_never_exceeds_max_concurrent() -> None:
    executor = BoundedExecutor(3)
    tracker = ConcurrencyTracker()

    results = await asyncio.gather(*(executor.run(tracker.work, 0.01) for _ in range(20)))

    assert results == ["done"] * 20
    assert tracker.peak == 3
    assert executor.in_flight == 0
    assert executor.waiting == 0


async def test_limit_holds_when_tasks_raise() -> None:
    executor = BoundedExecutor(2)
    tracker = ConcurrencyTracker()

    results = await asyncio.gather(
        *(executor.run(tracker.work, 0.01, index % 2 == 0) for index in range(10)),
        return_exceptions=True,
    )

    assert sum(isinstance(result, RuntimeError) for result in results) == 5
    assert tracker.peak == 2
    assert executor.in_flight == 0

    # all slots were released: a full batch still runs
    assert await asyncio.gather(executor.run(tracker.work, 0), executor.run(tracker.work, 0)) == ["done", "done"]


async def test_slot_released_on_cancellation() -> None:
    executor = BoundedExecutor(1)
    started = asyncio.Event()

    async def block() -> None:
        started.set()
        await asyncio.sleep(10)

    task = asyncio.create_task(executor.run(block))
    await started.wait()
    assert executor.in_flight == 1

    _ = task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert executor.in_flight == 0
    assert await asyncio.wait_for(executor.run(asyncio.sleep, 0, "free"), timeout=1) == "free"


async def test_waiting_counter_tracks_queued_callers() -> None:
    executor = BoundedExecutor(1)
    release = asyncio.Event()

    async def hold() -> None:
        await release.wait()

    holder = asyncio.create_task(executor.run(hold))
    queued = [asyncio.create_task(executor.run(hold)) for _ in range(3)]
    await asyncio.sleep(0.01)

    assert executor.in_flight == 1
    assert executor.waiting == 3

    release.set()
    _ = await asyncio.gather(holder, *queued)
    assert executor.waiting == 0


async def test_cancelled_waiter_leaves_the_queue() -> None:
    executor = BoundedExecutor(1)
    release = asyncio.Event()

    async def hold() -> None:
        await release.wait()

    holder = asyncio.create_task(executor.run(hold))
    queued = asyncio.create_task(executor.run(hold))
    await asyncio.sleep(0.01)
    assert executor.waiting == 1

    _ = queued.cancel()
    with pytest.raises(asyncio.CancelledError):
        await queued

    assert executor.waiting == 0
    assert executor.in_flight == 1

    release.set()
    await holder
    assert executor.in_flight == 0
