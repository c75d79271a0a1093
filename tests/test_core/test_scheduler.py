"""Tests for healthwatch/core/scheduler.py — ticking, error isolation, cancellation."""

from __future__ import annotations

import asyncio

import pytest

from healthwatch.core.clock import ManualClock
from healthwatch.core.scheduler import PeriodicTask, Scheduler


class TestPeriodicTask:
    @pytest.mark.asyncio
    async def test_runs_immediately_then_every_interval(self) -> None:
        clock = ManualClock()
        seen: list[float] = []

        async def tick() -> None:
            seen.append(clock.now())

        task = PeriodicTask("t", 10, tick, clock=clock)
        await task.start()
        await clock.advance(25)
        await task.stop()

        assert seen == [0, 10, 20]
        assert task.tick_count == 3

    @pytest.mark.asyncio
    async def test_run_immediately_false_waits_one_interval(self) -> None:
        clock = ManualClock()
        seen: list[float] = []

        async def tick() -> None:
            seen.append(clock.now())

        task = PeriodicTask("t", 10, tick, clock=clock, run_immediately=False)
        await task.start()
        await clock.advance(5)
        assert seen == []
        await clock.advance(5)
        assert seen == [10]
        await task.stop()

    @pytest.mark.asyncio
    async def test_exception_is_logged_and_loop_continues(self) -> None:
        clock = ManualClock()
        calls = 0

        async def flaky() -> None:
            nonlocal calls
            calls += 1
            if calls == 1:
                raise RuntimeError("boom")

        task = PeriodicTask("flaky", 10, flaky, clock=clock)
        await task.start()
        await clock.advance(10)
        await task.stop()

        assert calls == 2
        assert task.error_count == 1

    @pytest.mark.asyncio
    async def test_slow_tick_does_not_shift_schedule(self) -> None:
        clock = ManualClock()
        seen: list[float] = []

        async def slow() -> None:
            seen.append(clock.now())
            await clock.sleep(30)

        task = PeriodicTask("slow", 60, slow, clock=clock)
        await task.start()
        await clock.advance(150)
        await task.stop()

        assert seen == [0, 60, 120]

    @pytest.mark.asyncio
    async def test_hung_tick_does_not_block_later_ticks(self) -> None:
        clock = ManualClock()
        seen: list[float] = []
        cancelled: list[float] = []
        never = asyncio.Event()

        async def tick() -> None:
            seen.append(clock.now())
            if len(seen) == 1:
                try:
                    await never.wait()
                except asyncio.CancelledError:
                    cancelled.append(clock.now())
                    raise

        task = PeriodicTask("hung", 10, tick, clock=clock)
        await task.start()
        await clock.advance(20)
        assert seen == [0, 10, 20]
        assert task.inflight == 1

        await task.stop()
        assert cancelled == [20]
        assert task.inflight == 0

    @pytest.mark.asyncio
    async def test_stop_cancels_pending_sleep(self) -> None:
        clock = ManualClock()
        seen: list[float] = []

        async def tick() -> None:
            seen.append(clock.now())

        task = PeriodicTask("t", 10, tick, clock=clock)
        await task.start()
        await clock.advance(0)
        await task.stop()
        assert not task.running
        await clock.advance(100)
        assert seen == [0]

    @pytest.mark.asyncio
    async def test_start_twice_is_noop(self) -> None:
        clock = ManualClock()
        seen: list[float] = []

        async def tick() -> None:
            seen.append(clock.now())

        task = PeriodicTask("t", 10, tick, clock=clock)
        await task.start()
        await task.start()
        await clock.advance(0)
        await task.stop()
        assert seen == [0]

    def test_interval_must_be_positive(self) -> None:
        async def tick() -> None:
            pass

        with pytest.raises(ValueError):
            PeriodicTask("t", 0, tick)


class TestScheduler:
    @pytest.mark.asyncio
    async def test_start_and_stop_all(self) -> None:
        clock = ManualClock()
        counts = {"a": 0, "b": 0}

        def make(name: str):  # noqa: ANN202
            async def tick() -> None:
                counts[name] += 1
            return tick

        scheduler = Scheduler(clock)
        scheduler.add("a", 10, make("a"))
        scheduler.add("b", 30, make("b"))
        await scheduler.start_all()
        await clock.advance(30)
        await scheduler.stop_all()

        assert counts == {"a": 4, "b": 2}
        assert all(not t.running for t in scheduler.tasks)
