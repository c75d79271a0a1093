"""Notification, escalation and decision logging subsystem."""

from healthwatch.monitor.channels import (
    ChatChannel,
    EmailChannel,
    HttpChannel,
    NotificationChannel,
    PagerChannel,
    SmsChannel,
    WebhookChannel,
)
from healthwatch.monitor.dispatcher import NotificationDispatcher
from healthwatch.monitor.escalation import EscalationScheduler
from healthwatch.monitor.exceptions import NotificationError
from healthwatch.monitor.factory import create_channel, create_channels, create_dispatcher
from healthwatch.monitor.formatters import format_alert, iso_utc, render_text
from healthwatch.monitor.types import NotificationMessage

__all__ = [
    "ChatChannel",
    "EmailChannel",
    "EscalationScheduler",
    "HttpChannel",
    "NotificationChannel",
    "NotificationDispatcher",
    "NotificationError",
    "NotificationMessage",
    "PagerChannel",
    "SmsChannel",
    "WebhookChannel",
    "create_channel",
    "create_channels",
    "create_dispatcher",
    "format_alert",
    "iso_utc",
    "render_text",
]
