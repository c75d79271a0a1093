"""Clock abstraction — wall-clock in production, caller-driven in tests."""

from __future__ import annotations

import abc
import asyncio
import heapq
import time

# Event-loop passes granted to woken tasks after each ManualClock step.
_SETTLE_ROUNDS = 25


class Clock(abc.ABC):
    """Source of the current time and of timed sleeps."""

    @abc.abstractmethod
    def now(self) -> float:
        """Current time in epoch seconds."""

    @abc.abstractmethod
    async def sleep(self, secs: float) -> None:
        """Suspend the calling task for *secs* of this clock's time."""


class SystemClock(Clock):
    """Real wall-clock time backed by ``time.time`` and ``asyncio.sleep``."""

    def now(self) -> float:
        return time.time()

    async def sleep(self, secs: float) -> None:
        await asyncio.sleep(max(0.0, secs))


class ManualClock(Clock):
    """Deterministic clock for tests.

    Time only moves when ``advance()`` or ``set_time()`` is called.  Tasks
    sleeping on this clock are woken in deadline order as time passes over
    their deadline, and each wake-up is given a few event-loop passes to run
    before the next one fires.

    Usage::

        clock = ManualClock(start=1_000.0)
        task = asyncio.create_task(worker(clock))
        await clock.advance(60)   # wakes anything sleeping <= 60s
    """

    def __init__(self, start: float = 0.0) -> None:
        self._now = start
        self._seq = 0
        self._sleepers: list[tuple[float, int, asyncio.Future[None]]] = []

    def now(self) -> float:
        return self._now

    @property
    def pending_sleepers(self) -> int:
        return sum(1 for _, _, fut in self._sleepers if not fut.done())

    async def sleep(self, secs: float) -> None:
        if secs <= 0:
            await asyncio.sleep(0)
            return
        fut: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        heapq.heappush(self._sleepers, (self._now + secs, self._seq, fut))
        self._seq += 1
        await fut

    async def advance(self, secs: float) -> None:
        """Move time forward by *secs*, waking due sleepers in order."""
        await self.set_time(self._now + secs)

    async def set_time(self, ts: float) -> None:
        """Jump to *ts* (never backwards), waking due sleepers in order."""
        await _settle()
        while self._sleepers and self._sleepers[0][0] <= ts:
            deadline, _, fut = heapq.heappop(self._sleepers)
            if fut.done():
                continue
            self._now = max(self._now, deadline)
            fut.set_result(None)
            await _settle()
        self._now = max(self._now, ts)
        await _settle()


async def _settle() -> None:
    for _ in range(_SETTLE_ROUNDS):
        await asyncio.sleep(0)
