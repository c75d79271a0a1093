"""Tests for NotificationDispatcher — channel selection, isolation, timeouts, notification logging."""

from __future__ import annotations

import asyncio
from unittest.mock import patch

import pytest

from healthwatch.alerting.types import Alert
from healthwatch.core.types import AlertStatus, ChannelType, Severity
from healthwatch.monitor.channels import NotificationChannel
from healthwatch.monitor.dispatcher import NotificationDispatcher
from healthwatch.monitor.types import NotificationMessage


# ── Helpers ─────────────────────────────────────────────────────


class FakeChannel(NotificationChannel):
    """In-memory channel for testing."""

    def __init__(
        self,
        name: str = "fake",
        channel_type: ChannelType = ChannelType.CHAT,
        *,
        fail: bool = False,
        reject: bool = False,
        hang: bool = False,
    ) -> None:
        self.name = name
        self.channel_type = channel_type
        self.sent: list[NotificationMessage] = []
        self._fail = fail
        self._reject = reject
        self._hang = hang
        self.closed = False

    async def send(self, msg: NotificationMessage) -> bool:
        if self._fail:
            raise ConnectionError("fake error")
        if self._hang:
            await asyncio.sleep(3600)
        if self._reject:
            return False
        self.sent.append(msg)
        return True

    async def close(self) -> None:
        self.closed = True


def _alert(**kw: object) -> Alert:
    defaults: dict[str, object] = {
        "id": "a1",
        "key": "high-error-rate",
        "rule_id": "high-error-rate",
        "metric": "error_rate",
        "current_value": 7.0,
        "threshold": 5.0,
        "severity": Severity.CRITICAL,
        "start_time": 1000.0,
    }
    defaults.update(kw)
    return Alert(**defaults)  # type: ignore[arg-type]


# ── Routing ─────────────────────────────────────────────────────


class TestRouting:
    @pytest.mark.asyncio
    async def test_all_channels_by_default(self) -> None:
        ch1 = FakeChannel("chat")
        ch2 = FakeChannel("mail", ChannelType.EMAIL)
        disp = NotificationDispatcher(channels=[ch1, ch2])
        result = await disp.notify(_alert())
        assert result == {"chat": True, "mail": True}
        assert len(ch1.sent) == 1
        assert len(ch2.sent) == 1

    @pytest.mark.asyncio
    async def test_select_by_name(self) -> None:
        ch1 = FakeChannel("alerts-channel")
        ch2 = FakeChannel("ops-team", ChannelType.EMAIL)
        disp = NotificationDispatcher(channels=[ch1, ch2])
        result = await disp.notify(_alert(), channels=["ops-team"])
        assert result == {"ops-team": True}
        assert ch1.sent == []

    @pytest.mark.asyncio
    async def test_select_by_type(self) -> None:
        ch1 = FakeChannel("alerts-channel")
        ch2 = FakeChannel("critical-alerts", ChannelType.PAGER)
        disp = NotificationDispatcher(channels=[ch1, ch2])
        assert [c.name for c in disp.select_channels(["pager"])] == ["critical-alerts"]

    @pytest.mark.asyncio
    async def test_no_matching_channels(self) -> None:
        ch = FakeChannel("alerts-channel")
        disp = NotificationDispatcher(channels=[ch])
        assert await disp.notify(_alert(), channels=["sms"]) == {}
        assert ch.sent == []

    @pytest.mark.asyncio
    async def test_message_content(self) -> None:
        ch = FakeChannel()
        disp = NotificationDispatcher(channels=[ch])
        await disp.notify(_alert(), assignees=["cto"])
        msg = ch.sent[0]
        assert msg.alert_id == "a1"
        assert msg.key == "high-error-rate"
        assert msg.severity is Severity.CRITICAL
        assert msg.assignees == ["cto"]

    @pytest.mark.asyncio
    async def test_resolved_notification(self) -> None:
        ch = FakeChannel()
        disp = NotificationDispatcher(channels=[ch])
        await disp.notify(_alert(status=AlertStatus.RESOLVED, end_time=1300.0))
        assert ch.sent[0].is_resolved


# ── Failure isolation ───────────────────────────────────────────


class TestErrorHandling:
    @pytest.mark.asyncio
    async def test_channel_error_does_not_propagate(self) -> None:
        ch = FakeChannel(fail=True)
        disp = NotificationDispatcher(channels=[ch])
        assert await disp.notify(_alert()) == {"fake": False}

    @pytest.mark.asyncio
    async def test_one_channel_error_does_not_block_others(self) -> None:
        ch_fail = FakeChannel("broken", fail=True)
        ch_ok = FakeChannel("ok")
        disp = NotificationDispatcher(channels=[ch_fail, ch_ok])
        result = await disp.notify(_alert())
        assert result == {"broken": False, "ok": True}
        assert len(ch_ok.sent) == 1

    @pytest.mark.asyncio
    async def test_rejected_send_reported(self) -> None:
        ch = FakeChannel(reject=True)
        disp = NotificationDispatcher(channels=[ch])
        with patch("healthwatch.monitor.dispatcher.logger") as mock_log:
            result = await disp.notify(_alert())
        assert result == {"fake": False}
        assert mock_log.warning.call_args[0][0] == "notification_failed"

    @pytest.mark.asyncio
    async def test_timeout_bounded(self) -> None:
        ch_slow = FakeChannel("slow", hang=True)
        ch_ok = FakeChannel("ok")
        disp = NotificationDispatcher(channels=[ch_slow, ch_ok], send_timeout_secs=0.05)
        result = await asyncio.wait_for(disp.notify(_alert()), timeout=5)
        assert result == {"slow": False, "ok": True}


# ── Notification log ────────────────────────────────────────────


class TestNotificationLog:
    @pytest.mark.asyncio
    async def test_every_notification_logged(self) -> None:
        disp = NotificationDispatcher(channels=[FakeChannel("alerts-channel")])
        with patch("healthwatch.monitor.dispatcher.notification_logger") as mock_log:
            await disp.notify(_alert())
        mock_log.info.assert_called_once()
        call_kwargs = mock_log.info.call_args[1]
        assert call_kwargs["key"] == "high-error-rate"
        assert call_kwargs["severity"] == "critical"
        assert call_kwargs["status"] == "active"
        assert call_kwargs["channels"] == ["alerts-channel"]

    @pytest.mark.asyncio
    async def test_logged_even_without_channels(self) -> None:
        disp = NotificationDispatcher(channels=[])
        with patch("healthwatch.monitor.dispatcher.notification_logger") as mock_log:
            await disp.notify(_alert())
        mock_log.info.assert_called_once()
        assert mock_log.info.call_args[1]["channels"] == []


# ── Lifecycle ───────────────────────────────────────────────────


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_close_closes_channels(self) -> None:
        ch1 = FakeChannel("a")
        ch2 = FakeChannel("b")
        disp = NotificationDispatcher(channels=[ch1, ch2])
        await disp.close()
        assert ch1.closed and ch2.closed

    def test_channels_returns_copy(self) -> None:
        disp = NotificationDispatcher(channels=[FakeChannel()])
        disp.channels.clear()
        assert len(disp.channels) == 1
