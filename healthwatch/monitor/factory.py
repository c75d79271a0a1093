"""Convenience factory for wiring the notification stack."""

from __future__ import annotations

from healthwatch.core.clock import Clock
from healthwatch.core.config import (
    ChannelConfig,
    ChatChannelConfig,
    EmailChannelConfig,
    PagerChannelConfig,
    Settings,
    SmsChannelConfig,
    WebhookChannelConfig,
)
from healthwatch.monitor.channels import (
    ChatChannel,
    EmailChannel,
    NotificationChannel,
    PagerChannel,
    SmsChannel,
    WebhookChannel,
)
from healthwatch.monitor.dispatcher import NotificationDispatcher


def create_channel(config: ChannelConfig) -> NotificationChannel:
    """Build the channel implementation for one channel config."""
    if isinstance(config, EmailChannelConfig):
        return EmailChannel(config)
    if isinstance(config, ChatChannelConfig):
        return ChatChannel(config)
    if isinstance(config, PagerChannelConfig):
        return PagerChannel(config)
    if isinstance(config, SmsChannelConfig):
        return SmsChannel(config)
    if isinstance(config, WebhookChannelConfig):
        return WebhookChannel(config)
    raise TypeError(f"unsupported channel config: {type(config).__name__}")


def create_channels(configs: list[ChannelConfig]) -> list[NotificationChannel]:
    """Build every enabled channel, in config order."""
    return [create_channel(c) for c in configs if c.enabled]


def create_dispatcher(
    settings: Settings,
    channels: list[NotificationChannel] | None = None,
    clock: Clock | None = None,
) -> NotificationDispatcher:
    """Build a dispatcher from config.

    Args:
        settings: Loaded settings.
        channels: Pre-built channels; built from ``settings.channels`` if None.
        clock: Clock driving escalation delays.
    """
    if channels is None:
        channels = create_channels(settings.channels)
    return NotificationDispatcher(
        channels=channels,
        send_timeout_secs=settings.engine.send_timeout_secs,
        clock=clock,
    )
