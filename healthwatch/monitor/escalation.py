"""EscalationScheduler — timed re-notification steps for active alerts."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

import structlog

from healthwatch.alerting.types import Alert
from healthwatch.core.clock import Clock, SystemClock
from healthwatch.core.config import EscalationPolicy, EscalationStep
from healthwatch.core.types import AlertStatus

logger = structlog.get_logger(__name__)

NotifyFn = Callable[[Alert, list[str] | None, list[str]], Awaitable[object]]
AlertLookup = Callable[[str], Alert | None]


class EscalationScheduler:
    """Runs each policy's steps in order, each at its ``delay_minutes`` offset
    from arming (offsets are absolute, not summed).

    The alert's status is looked up when a step fires, not when it is armed:
    a resolved or deleted alert stops its escalation, a silenced one skips
    the step.  ``cancel(alert_id)`` drops every pending step at once.
    """

    def __init__(self, notify: NotifyFn, clock: Clock | None = None) -> None:
        self._notify = notify
        self._clock = clock or SystemClock()
        self._tasks: dict[str, set[asyncio.Task[None]]] = {}

    def arm(
        self,
        alert: Alert,
        policies: list[EscalationPolicy],
        lookup: AlertLookup,
    ) -> int:
        """Start one escalation task per policy with steps. Returns tasks armed."""
        armed = 0
        for policy in policies:
            if not policy.steps:
                continue
            task = asyncio.create_task(
                self._run(alert.id, policy, lookup),
                name=f"escalation:{alert.id}:{policy.id}",
            )
            self._tasks.setdefault(alert.id, set()).add(task)
            task.add_done_callback(lambda t, aid=alert.id: self._forget(aid, t))
            armed += 1
        if armed:
            logger.info(
                "escalation_armed",
                alert_id=alert.id,
                key=alert.key,
                policies=[p.id for p in policies if p.steps],
            )
        return armed

    def cancel(self, alert_id: str) -> int:
        """Cancel all pending steps for *alert_id*. Returns tasks cancelled."""
        tasks = self._tasks.pop(alert_id, set())
        for task in tasks:
            task.cancel()
        if tasks:
            logger.info("escalation_cancelled", alert_id=alert_id, tasks=len(tasks))
        return len(tasks)

    async def cancel_all(self) -> None:
        """Cancel every pending step and wait for the tasks to exit."""
        tasks = [t for group in self._tasks.values() for t in group]
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass

    def pending(self, alert_id: str | None = None) -> int:
        """Number of escalation tasks still running."""
        if alert_id is not None:
            return len(self._tasks.get(alert_id, ()))
        return sum(len(group) for group in self._tasks.values())

    def _forget(self, alert_id: str, task: asyncio.Task[None]) -> None:
        group = self._tasks.get(alert_id)
        if group is None:
            return
        group.discard(task)
        if not group:
            del self._tasks[alert_id]

    async def _run(self, alert_id: str, policy: EscalationPolicy, lookup: AlertLookup) -> None:
        elapsed = 0.0
        for index, step in enumerate(policy.steps):
            target = step.delay_minutes * 60.0
            if target > elapsed:
                await self._clock.sleep(target - elapsed)
                elapsed = target

            alert = lookup(alert_id)
            if alert is None:
                logger.info("escalation_stopped", alert_id=alert_id, policy=policy.id, step=index)
                return
            if alert.status is not AlertStatus.ACTIVE:
                logger.info(
                    "escalation_step_skipped",
                    alert_id=alert_id,
                    policy=policy.id,
                    step=index,
                    status=alert.status.value,
                )
                continue
            await self._fire(alert, policy, index, step)

    async def _fire(
        self,
        alert: Alert,
        policy: EscalationPolicy,
        index: int,
        step: EscalationStep,
    ) -> None:
        logger.warning(
            "escalation_step_fired",
            alert_id=alert.id,
            key=alert.key,
            policy=policy.id,
            step=index,
            channels=step.channels,
            assignees=step.assignees,
        )
        try:
            await self._notify(alert, step.channels or None, list(step.assignees))
        except Exception:
            logger.exception(
                "escalation_notify_error",
                alert_id=alert.id,
                policy=policy.id,
                step=index,
            )
