"""AlertManager — owns the alert lifecycle state machine.

States::

    active ──resolve──▶ resolved (terminal)
      ▲  │
      │  silence
      │  ▼
    silenced ──resolve──▶ resolved

One live alert exists per key.  Re-triggering a live key only refreshes its
current value.  Silencing suppresses notifications, never evaluation.
"""

from __future__ import annotations

import asyncio
import contextlib
import uuid
from collections import deque
from collections.abc import AsyncIterator, Mapping
from typing import TYPE_CHECKING

import structlog

from healthwatch.alerting.exceptions import InvalidSilenceError
from healthwatch.alerting.silences import Silence
from healthwatch.alerting.types import Alert
from healthwatch.core.clock import Clock, SystemClock
from healthwatch.core.config import EscalationPolicy
from healthwatch.core.types import AlertStatus, Severity, TimeRange

if TYPE_CHECKING:
    from healthwatch.monitor.dispatcher import NotificationDispatcher

logger = structlog.stdlib.get_logger()


class AlertManager:
    """In-memory alert state with per-key serialisation.

    Usage::

        manager = AlertManager(dispatcher, policies)
        await manager.trigger("high-error-rate", rule_id="high-error-rate", ...)
        await manager.silence("maintenance", 3600, "planned")
        await manager.resolve("high-error-rate")
    """

    def __init__(
        self,
        dispatcher: NotificationDispatcher | None = None,
        escalation_policies: list[EscalationPolicy] | None = None,
        clock: Clock | None = None,
        max_history: int = 10_000,
    ) -> None:
        self._dispatcher = dispatcher
        self._policies = list(escalation_policies or [])
        self._clock = clock or SystemClock()
        self._live: dict[str, Alert] = {}
        self._history: deque[Alert] = deque(maxlen=max_history)
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}
        self._silences: dict[str, Silence] = {}
        self._silence_tasks: dict[str, asyncio.Task[None]] = {}

    # ── Queries ─────────────────────────────────────────────────

    def get_active_alerts(self) -> list[Alert]:
        """Snapshot of alerts currently in the ``active`` state."""
        return [a.model_copy() for a in self._live.values() if a.status is AlertStatus.ACTIVE]

    def get_alerts(self, status: AlertStatus | None = None) -> list[Alert]:
        """Snapshot of live alerts, optionally filtered by status.

        ``resolved`` alerts are no longer live; that filter reads the
        retained history instead, oldest first.
        """
        if status is AlertStatus.RESOLVED:
            return [a.model_copy() for a in self._history if a.status is AlertStatus.RESOLVED]
        return [
            a.model_copy() for a in self._live.values()
            if status is None or a.status is status
        ]

    def get_alert(self, key: str) -> Alert | None:
        alert = self._live.get(key)
        return alert.model_copy() if alert is not None else None

    def get_alert_by_id(self, alert_id: str) -> Alert | None:
        """Live alert with *alert_id*; None once resolved or deleted."""
        for alert in self._live.values():
            if alert.id == alert_id:
                return alert.model_copy()
        return None

    def history(self, time_range: TimeRange | None = None) -> list[Alert]:
        """Every alert (live and resolved) whose start time falls in range."""
        return [
            a.model_copy() for a in self._history
            if time_range is None or time_range.contains(a.start_time)
        ]

    def silences(self) -> list[Silence]:
        return [s.model_copy() for s in self._silences.values()]

    # ── Transitions ─────────────────────────────────────────────

    async def trigger(
        self,
        key: str,
        *,
        rule_id: str,
        metric: str,
        severity: Severity,
        description: str,
        current_value: float,
        threshold: float,
        labels: Mapping[str, str] | None = None,
        channels: list[str] | None = None,
    ) -> Alert:
        """Open an alert for *key*, or refresh the value of the live one."""
        async with self._locked(key):
            existing = self._live.get(key)
            if existing is not None:
                existing.current_value = current_value
                logger.debug("alert_updated", key=key, current_value=current_value)
                return existing.model_copy()

            now = self._clock.now()
            alert = Alert(
                id=uuid.uuid4().hex,
                key=key,
                rule_id=rule_id,
                metric=metric,
                current_value=current_value,
                threshold=threshold,
                severity=severity,
                start_time=now,
                description=description,
                labels=dict(labels or {}),
                channels=list(channels or []),
            )
            silence = self._matching_silence(alert, now)
            if silence is not None:
                alert.status = AlertStatus.SILENCED
                alert.silenced_until = silence.expires_at
                alert.silence_reason = silence.reason

            self._live[key] = alert
            self._history.append(alert)
            logger.warning(
                "alert_triggered",
                key=key,
                alert_id=alert.id,
                rule_id=rule_id,
                severity=severity.value,
                current_value=current_value,
                threshold=threshold,
                silenced=alert.status is AlertStatus.SILENCED,
            )

            if alert.status is AlertStatus.ACTIVE:
                await self._notify(alert)
            self._arm_escalation(alert)
            return alert.model_copy()

    async def resolve(self, key: str) -> Alert | None:
        """Resolve the live alert for *key*. No-op if there is none."""
        async with self._locked(key):
            alert = self._live.pop(key, None)
            if alert is None:
                return None

            was_silenced = alert.status is AlertStatus.SILENCED
            alert.status = AlertStatus.RESOLVED
            alert.end_time = self._clock.now()
            alert.silenced_until = None
            if self._dispatcher is not None:
                self._dispatcher.cancel_escalation(alert.id)

            logger.info(
                "alert_resolved",
                key=key,
                alert_id=alert.id,
                duration_secs=alert.duration_secs,
                silenced=was_silenced,
            )
            if not was_silenced:
                await self._notify(alert)
            return alert.model_copy()

    async def delete(self, key: str) -> Alert | None:
        """Drop a live alert without notifying; cancels its escalation."""
        async with self._locked(key):
            alert = self._live.pop(key, None)
            if alert is None:
                return None
            if self._dispatcher is not None:
                self._dispatcher.cancel_escalation(alert.id)
            logger.info("alert_deleted", key=key, alert_id=alert.id)
            return alert.model_copy()

    async def silence(self, pattern: str, duration_secs: float, reason: str = "") -> Silence:
        """Silence live and future alerts matching *pattern* for *duration_secs*.

        Silenced alerts revert to ``active`` when the window elapses, without
        a new violation.  Only alerts that opened inside the window and were
        never announced get a notification at that point.
        """
        if not pattern.strip():
            raise InvalidSilenceError("silence pattern must not be empty")
        if duration_secs <= 0:
            raise InvalidSilenceError("silence duration must be positive")

        now = self._clock.now()
        silence = Silence(
            id=uuid.uuid4().hex,
            pattern=pattern,
            reason=reason,
            created_at=now,
            expires_at=now + duration_secs,
        )
        self._silences[silence.id] = silence

        silenced = 0
        for key in list(self._live):
            async with self._locked(key):
                alert = self._live.get(key)
                if alert is None or not silence.matches(alert):
                    continue
                alert.status = AlertStatus.SILENCED
                alert.silenced_until = max(alert.silenced_until or 0.0, silence.expires_at)
                alert.silence_reason = reason
                silenced += 1

        self._silence_tasks[silence.id] = asyncio.create_task(
            self._expire_after(silence, duration_secs),
            name=f"silence:{silence.id}",
        )
        logger.info(
            "silence_created",
            silence_id=silence.id,
            pattern=pattern,
            duration_secs=duration_secs,
            reason=reason,
            silenced_alerts=silenced,
        )
        return silence.model_copy()

    async def unsilence(self, silence_id: str) -> bool:
        """End a silence early. Returns False if it does not exist."""
        task = self._silence_tasks.pop(silence_id, None)
        if task is not None:
            task.cancel()
        if silence_id not in self._silences:
            return False
        await self._expire(silence_id)
        return True

    async def close(self) -> None:
        """Cancel pending silence expiries (shutdown)."""
        tasks = list(self._silence_tasks.values())
        self._silence_tasks.clear()
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass

    # ── Internal ────────────────────────────────────────────────

    @contextlib.asynccontextmanager
    async def _locked(self, key: str) -> AsyncIterator[None]:
        """Serialise work on *key*; the lock is dropped once nobody holds or awaits it."""
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        self._lock_users[key] = self._lock_users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[key] -= 1
            if not self._lock_users[key]:
                del self._lock_users[key]
                del self._locks[key]

    def _matching_silence(self, alert: Alert, now: float) -> Silence | None:
        matching = [
            s for s in self._silences.values() if s.active_at(now) and s.matches(alert)
        ]
        if not matching:
            return None
        return max(matching, key=lambda s: s.expires_at)

    async def _expire_after(self, silence: Silence, duration_secs: float) -> None:
        await self._clock.sleep(duration_secs)
        self._silence_tasks.pop(silence.id, None)
        await self._expire(silence.id)

    async def _expire(self, silence_id: str) -> None:
        silence = self._silences.pop(silence_id, None)
        if silence is None:
            return
        now = self._clock.now()
        reactivated = 0
        for key in list(self._live):
            async with self._locked(key):
                alert = self._live.get(key)
                if alert is None or alert.status is not AlertStatus.SILENCED:
                    continue
                if not silence.matches(alert):
                    continue
                other = self._matching_silence(alert, now)
                if other is not None:
                    alert.silenced_until = other.expires_at
                    alert.silence_reason = other.reason
                    continue
                alert.status = AlertStatus.ACTIVE
                alert.silenced_until = None
                alert.silence_reason = ""
                reactivated += 1
                if not alert.notified:
                    await self._notify(alert)
        logger.info("silence_expired", silence_id=silence_id, reactivated_alerts=reactivated)

    async def _notify(self, alert: Alert) -> None:
        if self._dispatcher is None:
            return
        alert.notified = True
        try:
            await self._dispatcher.notify(alert.model_copy(), channels=alert.channels or None)
        except Exception:
            logger.exception("alert_notification_failed", key=alert.key, alert_id=alert.id)

    def _arm_escalation(self, alert: Alert) -> None:
        if self._dispatcher is None:
            return
        policies = [p for p in self._policies if p.applies_to(alert.rule_id, alert.severity)]
        if not policies:
            return
        self._dispatcher.arm_escalation(alert.model_copy(), policies, self.get_alert_by_id)
