"""Notification channels — email relay, chat, pager, SMS and webhook delivery."""

from __future__ import annotations

import abc
from typing import Any

import aiohttp
import structlog

from healthwatch.core.config import (
    ChatChannelConfig,
    EmailChannelConfig,
    PagerChannelConfig,
    SmsChannelConfig,
    WebhookChannelConfig,
)
from healthwatch.core.types import ChannelType, Severity
from healthwatch.monitor.formatters import render_text
from healthwatch.monitor.types import NotificationMessage

logger = structlog.get_logger(__name__)

# Chat attachment colours keyed by severity.
_CHAT_COLORS: dict[Severity, str] = {
    Severity.INFO: "#2ECC71",     # green
    Severity.WARNING: "#F39C12",  # orange
    Severity.CRITICAL: "#E74C3C", # red
}
_RESOLVED_COLOR = "#95A5A6"

_PAGER_SEVERITY: dict[Severity, str] = {
    Severity.INFO: "info",
    Severity.WARNING: "warning",
    Severity.CRITICAL: "critical",
}


class NotificationChannel(abc.ABC):
    """Base class for alert delivery channels."""

    name: str
    channel_type: ChannelType

    @abc.abstractmethod
    async def send(self, msg: NotificationMessage) -> bool:
        """Send a notification. Returns True on success."""

    @abc.abstractmethod
    async def close(self) -> None:
        """Release resources (HTTP sessions, etc.)."""


class HttpChannel(NotificationChannel):
    """Channel that delivers by POSTing JSON over a shared aiohttp session."""

    _ok_statuses: tuple[int, ...] = (200, 201, 202, 204)

    def __init__(self, name: str) -> None:
        self.name = name
        self._session: aiohttp.ClientSession | None = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
        return self._session

    async def _post(
        self,
        url: str,
        payload: dict[str, Any],
        headers: dict[str, str] | None = None,
    ) -> bool:
        try:
            session = self._get_session()
            async with session.post(url, json=payload, headers=headers) as resp:
                if resp.status in self._ok_statuses:
                    return True
                body = await resp.text()
                logger.warning(
                    "channel_send_failed",
                    channel=self.name,
                    type=self.channel_type.value,
                    status=resp.status,
                    body=body[:200],
                )
                return False
        except Exception:
            logger.exception("channel_send_error", channel=self.name, type=self.channel_type.value)
            return False

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None


class EmailChannel(HttpChannel):
    """Delivers alerts as email through an HTTP mail relay."""

    channel_type = ChannelType.EMAIL

    def __init__(self, config: EmailChannelConfig) -> None:
        super().__init__(config.name)
        self._relay_url = config.relay_url
        self._sender = config.sender
        self._recipients = list(config.recipients)
        self._api_key = config.api_key.get_secret_value()

    async def send(self, msg: NotificationMessage) -> bool:
        payload = {
            "from": self._sender,
            "to": self._recipients,
            "subject": msg.title,
            "text": render_text(msg),
        }
        headers = {"Authorization": f"Bearer {self._api_key}"} if self._api_key else None
        return await self._post(self._relay_url, payload, headers)


class ChatChannel(HttpChannel):
    """Delivers alerts to a Slack-compatible incoming webhook."""

    channel_type = ChannelType.CHAT

    def __init__(self, config: ChatChannelConfig) -> None:
        super().__init__(config.name)
        self._webhook_url = config.webhook_url.get_secret_value()
        self._channel = config.channel

    async def send(self, msg: NotificationMessage) -> bool:
        color = _RESOLVED_COLOR if msg.is_resolved else _CHAT_COLORS.get(msg.severity, _RESOLVED_COLOR)
        attachment: dict[str, Any] = {
            "color": color,
            "title": msg.title,
            "fields": [
                {"title": k, "value": v, "short": True}
                for k, v in msg.fields.items()
            ],
        }
        if msg.body:
            attachment["text"] = msg.body
        if msg.assignees:
            attachment["footer"] = "Assignees: " + ", ".join(msg.assignees)

        payload: dict[str, Any] = {"text": msg.title, "attachments": [attachment]}
        if self._channel:
            payload["channel"] = self._channel
        return await self._post(self._webhook_url, payload)


class PagerChannel(HttpChannel):
    """Delivers alerts as PagerDuty Events v2 trigger/resolve events.

    The alert key is used as the dedup key, so a resolve closes the incident
    its trigger opened.
    """

    channel_type = ChannelType.PAGER

    def __init__(self, config: PagerChannelConfig) -> None:
        super().__init__(config.name)
        self._routing_key = config.integration_key.get_secret_value()
        self._events_url = config.events_url

    async def send(self, msg: NotificationMessage) -> bool:
        payload: dict[str, Any] = {
            "routing_key": self._routing_key,
            "event_action": "resolve" if msg.is_resolved else "trigger",
            "dedup_key": msg.key,
        }
        if not msg.is_resolved:
            payload["payload"] = {
                "summary": msg.title,
                "source": msg.fields.get("metric", "healthwatch"),
                "severity": _PAGER_SEVERITY[msg.severity],
                "custom_details": {**msg.fields, "assignees": msg.assignees},
            }
        return await self._post(self._events_url, payload)


class SmsChannel(HttpChannel):
    """Delivers a short alert text to every configured number via an SMS gateway."""

    channel_type = ChannelType.SMS

    def __init__(self, config: SmsChannelConfig) -> None:
        super().__init__(config.name)
        self._gateway_url = config.gateway_url
        self._numbers = list(config.numbers)
        self._api_key = config.api_key.get_secret_value()

    async def send(self, msg: NotificationMessage) -> bool:
        text = msg.title
        if msg.assignees:
            text += f" ({', '.join(msg.assignees)})"
        headers = {"Authorization": f"Bearer {self._api_key}"} if self._api_key else None
        ok = True
        for number in self._numbers:
            sent = await self._post(self._gateway_url, {"to": number, "message": text[:160]}, headers)
            ok = ok and sent
        return ok


class WebhookChannel(HttpChannel):
    """Posts the full notification as JSON to a generic webhook."""

    channel_type = ChannelType.WEBHOOK

    def __init__(self, config: WebhookChannelConfig) -> None:
        super().__init__(config.name)
        self._url = config.url.get_secret_value()
        self._headers = dict(config.headers)

    async def send(self, msg: NotificationMessage) -> bool:
        payload = msg.model_dump(mode="json")
        payload["text"] = render_text(msg)
        return await self._post(self._url, payload, self._headers or None)
