"""Tests for EscalationScheduler — step timing, cancellation, status checks at fire time."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from healthwatch.alerting.manager import AlertManager
from healthwatch.alerting.types import Alert
from healthwatch.core.clock import ManualClock
from healthwatch.core.config import EscalationPolicy, EscalationStep
from healthwatch.core.types import AlertStatus, ChannelType, Severity
from healthwatch.monitor.channels import NotificationChannel
from healthwatch.monitor.dispatcher import NotificationDispatcher
from healthwatch.monitor.escalation import EscalationScheduler
from healthwatch.monitor.types import NotificationMessage

START = 10_000.0


# ── Helpers ─────────────────────────────────────────────────────


class RecordingChannel(NotificationChannel):
    def __init__(self, name: str, channel_type: ChannelType) -> None:
        self.name = name
        self.channel_type = channel_type
        self.sent: list[NotificationMessage] = []

    async def send(self, msg: NotificationMessage) -> bool:
        self.sent.append(msg)
        return True

    async def close(self) -> None:
        pass


def _policy(**kw: object) -> EscalationPolicy:
    defaults: dict[str, object] = {
        "id": "critical-escalation",
        "severities": [Severity.CRITICAL],
        "steps": [
            EscalationStep(delay_minutes=0, channels=["chat", "pager"],
                           assignees=["on-call-engineer"]),
            EscalationStep(delay_minutes=15, channels=["email", "pager"],
                           assignees=["tech-lead", "engineering-manager"]),
            EscalationStep(delay_minutes=30, channels=["email", "sms"], assignees=["cto"]),
        ],
    }
    defaults.update(kw)
    return EscalationPolicy(**defaults)  # type: ignore[arg-type]


def _alert(**kw: object) -> Alert:
    defaults: dict[str, object] = {
        "id": "a1",
        "key": "high-error-rate",
        "rule_id": "high-error-rate",
        "metric": "error_rate",
        "current_value": 7.0,
        "threshold": 5.0,
        "severity": Severity.CRITICAL,
        "start_time": START,
    }
    defaults.update(kw)
    return Alert(**defaults)  # type: ignore[arg-type]


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(start=START)


# ── Scheduler in isolation ──────────────────────────────────────


class TestSchedulerTiming:
    @pytest.mark.asyncio
    async def test_steps_fire_at_offsets_from_arm_time(self, clock: ManualClock) -> None:
        fired_at: list[float] = []

        async def notify(alert: Alert, channels: list[str] | None, assignees: list[str]) -> None:
            fired_at.append(clock.now())

        alert = _alert()
        sched = EscalationScheduler(notify, clock)
        assert sched.arm(alert, [_policy()], lambda _id: alert) == 1

        await clock.advance(0)
        await clock.advance(15 * 60)
        await clock.advance(15 * 60)

        assert fired_at == [START, START + 900, START + 1800]
        assert sched.pending() == 0

    @pytest.mark.asyncio
    async def test_step_channels_and_assignees(self, clock: ManualClock) -> None:
        notify = AsyncMock()
        alert = _alert()
        sched = EscalationScheduler(notify, clock)
        sched.arm(alert, [_policy()], lambda _id: alert)
        await clock.advance(0)

        notify.assert_awaited_once()
        args = notify.call_args[0]
        assert args[1] == ["chat", "pager"]
        assert args[2] == ["on-call-engineer"]
        await sched.cancel_all()

    @pytest.mark.asyncio
    async def test_policy_without_steps_not_armed(self, clock: ManualClock) -> None:
        sched = EscalationScheduler(AsyncMock(), clock)
        assert sched.arm(_alert(), [_policy(steps=[])], lambda _id: None) == 0
        assert sched.pending() == 0

    @pytest.mark.asyncio
    async def test_one_task_per_policy(self, clock: ManualClock) -> None:
        sched = EscalationScheduler(AsyncMock(), clock)
        alert = _alert()
        armed = sched.arm(alert, [_policy(), _policy(id="second")], lambda _id: alert)
        assert armed == 2
        assert sched.pending("a1") == 2
        await sched.cancel_all()


class TestSchedulerStatusChecks:
    @pytest.mark.asyncio
    async def test_cancel_drops_pending_steps(self, clock: ManualClock) -> None:
        notify = AsyncMock()
        alert = _alert()
        sched = EscalationScheduler(notify, clock)
        sched.arm(alert, [_policy()], lambda _id: alert)
        await clock.advance(0)

        assert sched.cancel("a1") == 1
        await clock.advance(3600)
        assert notify.await_count == 1
        assert sched.pending() == 0

    @pytest.mark.asyncio
    async def test_missing_alert_stops_escalation(self, clock: ManualClock) -> None:
        notify = AsyncMock()
        live: dict[str, Alert] = {"a1": _alert()}
        sched = EscalationScheduler(notify, clock)
        sched.arm(live["a1"], [_policy()], live.get)
        await clock.advance(0)

        del live["a1"]
        await clock.advance(3600)
        assert notify.await_count == 1
        assert sched.pending() == 0

    @pytest.mark.asyncio
    async def test_silenced_alert_skips_step(self, clock: ManualClock) -> None:
        notify = AsyncMock()
        live: dict[str, Alert] = {"a1": _alert(status=AlertStatus.SILENCED)}
        sched = EscalationScheduler(notify, clock)
        sched.arm(live["a1"], [_policy()], live.get)
        await clock.advance(0)
        assert notify.await_count == 0

        live["a1"] = _alert()
        await clock.advance(15 * 60)
        assert notify.await_count == 1
        await sched.cancel_all()

    @pytest.mark.asyncio
    async def test_notify_error_does_not_stop_later_steps(self, clock: ManualClock) -> None:
        notify = AsyncMock(side_effect=[RuntimeError("boom"), None, None])
        alert = _alert()
        sched = EscalationScheduler(notify, clock)
        sched.arm(alert, [_policy()], lambda _id: alert)
        await clock.advance(0)
        await clock.advance(30 * 60)
        assert notify.await_count == 3

    @pytest.mark.asyncio
    async def test_cancel_all(self, clock: ManualClock) -> None:
        alert = _alert()
        sched = EscalationScheduler(AsyncMock(), clock)
        sched.arm(alert, [_policy()], lambda _id: alert)
        sched.arm(_alert(id="a2"), [_policy()], lambda _id: alert)
        await sched.cancel_all()
        assert sched.pending() == 0


# ── Through AlertManager and the dispatcher ─────────────────────


class TestEscalationIntegration:
    @pytest.fixture
    def channels(self) -> dict[str, RecordingChannel]:
        return {
            "chat": RecordingChannel("alerts-channel", ChannelType.CHAT),
            "email": RecordingChannel("ops-team", ChannelType.EMAIL),
            "pager": RecordingChannel("critical-alerts", ChannelType.PAGER),
        }

    @pytest.fixture
    def manager(self, channels: dict[str, RecordingChannel], clock: ManualClock) -> AlertManager:
        dispatcher = NotificationDispatcher(list(channels.values()), clock=clock)
        return AlertManager(dispatcher, [_policy()], clock=clock)

    async def _trigger(self, manager: AlertManager) -> Alert:
        return await manager.trigger(
            "high-error-rate",
            rule_id="high-error-rate",
            metric="error_rate",
            severity=Severity.CRITICAL,
            description="Error rate exceeded critical threshold",
            current_value=7.0,
            threshold=5.0,
        )

    @pytest.mark.asyncio
    async def test_full_escalation(
        self, manager: AlertManager, channels: dict[str, RecordingChannel], clock: ManualClock,
    ) -> None:
        await self._trigger(manager)
        await clock.advance(0)
        await clock.advance(15 * 60)
        await clock.advance(15 * 60)

        # initial + step 0
        assert len(channels["chat"].sent) == 2
        # initial + step 0 + step 1
        assert len(channels["pager"].sent) == 3
        # initial + step 1 + step 2 (no sms channel configured)
        assert len(channels["email"].sent) == 3
        assert channels["email"].sent[-1].assignees == ["cto"]
        await manager.close()

    @pytest.mark.asyncio
    async def test_resolve_cancels_escalation(
        self, manager: AlertManager, channels: dict[str, RecordingChannel], clock: ManualClock,
    ) -> None:
        await self._trigger(manager)
        await clock.advance(5 * 60)
        await manager.resolve("high-error-rate")
        await clock.advance(3600)

        # initial + resolution only; no step 1 or step 2
        assert len(channels["email"].sent) == 2
        assert channels["email"].sent[-1].is_resolved
        assert channels["pager"].sent[-1].is_resolved

    @pytest.mark.asyncio
    async def test_silenced_step_is_skipped(
        self, manager: AlertManager, channels: dict[str, RecordingChannel], clock: ManualClock,
    ) -> None:
        await self._trigger(manager)
        await clock.advance(60)
        await manager.silence("error", duration_secs=20 * 60, reason="investigating")
        await clock.advance(28 * 60)

        # step 1 fell inside the silence
        assert len(channels["email"].sent) == 1
        assert manager.get_alert("high-error-rate").status is AlertStatus.ACTIVE

        await clock.advance(60)
        # step 2 fires once the silence has expired
        assert len(channels["email"].sent) == 2
        await manager.close()

    @pytest.mark.asyncio
    async def test_alert_opened_in_silence_notifies_after_expiry(
        self, manager: AlertManager, channels: dict[str, RecordingChannel], clock: ManualClock,
    ) -> None:
        await manager.silence("error", duration_secs=3600, reason="maintenance")
        await self._trigger(manager)
        await clock.advance(3600)

        # steps 0-2 all fell inside the silence; expiry announces the alert
        assert len(channels["chat"].sent) == 1
        assert len(channels["pager"].sent) == 1
        assert not channels["chat"].sent[0].is_resolved
        await clock.advance(2 * 3600)
        assert len(channels["chat"].sent) == 1
        await manager.close()
