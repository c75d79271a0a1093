"""Periodic task runner — fixed-rate ticker plus cancellation, driven by a Clock."""

from __future__ import annotations

import asyncio
import math
from collections.abc import Awaitable, Callable

import structlog

from healthwatch.core.clock import Clock, SystemClock

logger = structlog.stdlib.get_logger()

TickFn = Callable[[], Awaitable[None]]


class PeriodicTask:
    """Runs an async callable every *interval_secs* until stopped.

    Ticks are scheduled at a fixed rate from the first one and each runs in
    its own task, so a slow or hung tick never pushes later ticks back.
    Exceptions raised by the callable are logged and counted.  ``stop()``
    cancels the loop together with any tick still in progress.

    Usage::

        task = PeriodicTask("evaluator", 60.0, evaluator.evaluate_once)
        await task.start()
        ...
        await task.stop()
    """

    def __init__(
        self,
        name: str,
        interval_secs: float,
        fn: TickFn,
        clock: Clock | None = None,
        run_immediately: bool = True,
    ) -> None:
        if interval_secs <= 0:
            raise ValueError("interval_secs must be positive")
        self._name = name
        self._interval_secs = interval_secs
        self._fn = fn
        self._clock = clock or SystemClock()
        self._run_immediately = run_immediately
        self._task: asyncio.Task[None] | None = None
        self._inflight: set[asyncio.Task[None]] = set()
        self._running = False
        self._tick_count = 0
        self._error_count = 0

    @property
    def name(self) -> str:
        return self._name

    @property
    def running(self) -> bool:
        return self._running

    @property
    def tick_count(self) -> int:
        return self._tick_count

    @property
    def error_count(self) -> int:
        return self._error_count

    @property
    def inflight(self) -> int:
        """Ticks started but not yet finished."""
        return len(self._inflight)

    async def start(self) -> None:
        """Start the background loop."""
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._loop(), name=f"periodic:{self._name}")

    async def stop(self) -> None:
        """Cancel the loop and any running tick, and wait for them to exit."""
        self._running = False
        tasks = list(self._inflight)
        if self._task is not None:
            tasks.append(self._task)
            self._task = None
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._inflight.clear()

    async def _loop(self) -> None:
        next_due = self._clock.now()
        if not self._run_immediately:
            next_due += self._interval_secs
        while self._running:
            delay = next_due - self._clock.now()
            if delay > 0:
                await self._clock.sleep(delay)
            if not self._running:
                break
            self._spawn_tick()

            next_due += self._interval_secs
            now = self._clock.now()
            if next_due < now:
                skipped = math.ceil((now - next_due) / self._interval_secs)
                next_due += skipped * self._interval_secs
                logger.warning("periodic_task_behind", task=self._name, skipped=skipped)

    def _spawn_tick(self) -> None:
        if self._inflight:
            logger.warning(
                "periodic_task_overlap", task=self._name, inflight=len(self._inflight),
            )
        task = asyncio.create_task(self._tick(), name=f"tick:{self._name}")
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    async def _tick(self) -> None:
        try:
            await self._fn()
        except Exception:
            self._error_count += 1
            logger.exception(
                "periodic_task_error",
                task=self._name,
                error_count=self._error_count,
            )
        finally:
            self._tick_count += 1


class Scheduler:
    """Owns a set of PeriodicTasks and starts/stops them together."""

    def __init__(self, clock: Clock | None = None) -> None:
        self._clock = clock or SystemClock()
        self._tasks: list[PeriodicTask] = []

    @property
    def tasks(self) -> list[PeriodicTask]:
        return list(self._tasks)

    def add(
        self,
        name: str,
        interval_secs: float,
        fn: TickFn,
        run_immediately: bool = True,
    ) -> PeriodicTask:
        task = PeriodicTask(
            name, interval_secs, fn, clock=self._clock, run_immediately=run_immediately,
        )
        self._tasks.append(task)
        return task

    async def start_all(self) -> None:
        for task in self._tasks:
            await task.start()
        logger.info("scheduler_started", tasks=len(self._tasks))

    async def stop_all(self) -> None:
        for task in self._tasks:
            try:
                await task.stop()
            except Exception:
                logger.exception("periodic_task_stop_error", task=task.name)
        logger.info("scheduler_stopped", tasks=len(self._tasks))
