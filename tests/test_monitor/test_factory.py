"""Tests for the monitor factory — channel construction from config."""

from __future__ import annotations

import pytest

from healthwatch.core.clock import ManualClock
from healthwatch.core.config import ChatChannelConfig, parse_settings
from healthwatch.monitor.channels import (
    ChatChannel,
    EmailChannel,
    PagerChannel,
    SmsChannel,
    WebhookChannel,
)
from healthwatch.monitor.dispatcher import NotificationDispatcher
from healthwatch.monitor.factory import create_channel, create_channels, create_dispatcher


# ── Helpers ─────────────────────────────────────────────────────


def _channel_configs() -> list[dict[str, object]]:
    return [
        {"type": "chat", "name": "alerts-channel", "webhook_url": "https://hook"},
        {"type": "email", "name": "ops-team", "relay_url": "https://relay",
         "recipients": ["ops@example.com"]},
        {"type": "pager", "name": "critical-alerts", "integration_key": "key"},
        {"type": "sms", "name": "oncall-sms", "gateway_url": "https://sms",
         "numbers": ["+15550100"]},
        {"type": "webhook", "name": "hook", "url": "https://hook.example.com"},
    ]


# ── Channel construction ───────────────────────────────────────


class TestCreateChannel:
    def test_each_type(self) -> None:
        settings = parse_settings({"channels": _channel_configs()})
        channels = create_channels(settings.channels)
        assert [type(c) for c in channels] == [
            ChatChannel, EmailChannel, PagerChannel, SmsChannel, WebhookChannel,
        ]
        assert [c.name for c in channels] == [
            "alerts-channel", "ops-team", "critical-alerts", "oncall-sms", "hook",
        ]

    def test_disabled_channels_skipped(self) -> None:
        configs = _channel_configs()
        configs[3]["enabled"] = False
        settings = parse_settings({"channels": configs})
        names = [c.name for c in create_channels(settings.channels)]
        assert "oncall-sms" not in names
        assert len(names) == 4

    def test_unknown_config_rejected(self) -> None:
        with pytest.raises(TypeError):
            create_channel(object())  # type: ignore[arg-type]

    def test_single_channel(self) -> None:
        cfg = ChatChannelConfig(name="c", webhook_url="https://hook")  # type: ignore[arg-type]
        assert isinstance(create_channel(cfg), ChatChannel)


# ── Dispatcher wiring ───────────────────────────────────────────


class TestCreateDispatcher:
    def test_no_channels(self) -> None:
        disp = create_dispatcher(parse_settings({}))
        assert isinstance(disp, NotificationDispatcher)
        assert disp.channels == []

    def test_channels_from_settings(self) -> None:
        disp = create_dispatcher(parse_settings({"channels": _channel_configs()}))
        assert len(disp.channels) == 5

    def test_prebuilt_channels_win(self) -> None:
        settings = parse_settings({"channels": _channel_configs()})
        prebuilt = [ChatChannel(ChatChannelConfig(name="x", webhook_url="https://h"))]  # type: ignore[arg-type]
        disp = create_dispatcher(settings, prebuilt, clock=ManualClock())
        assert [c.name for c in disp.channels] == ["x"]

    def test_send_timeout_from_engine_config(self) -> None:
        settings = parse_settings({"engine": {"send_timeout_secs": 3}})
        disp = create_dispatcher(settings)
        assert disp._send_timeout_secs == 3
