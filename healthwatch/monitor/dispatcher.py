"""Central notification dispatcher — fans alerts out to channels, drives escalation."""

from __future__ import annotations

import asyncio

import structlog

from healthwatch.alerting.types import Alert
from healthwatch.core.clock import Clock, SystemClock
from healthwatch.core.config import EscalationPolicy
from healthwatch.monitor.channels import NotificationChannel
from healthwatch.monitor.escalation import AlertLookup, EscalationScheduler
from healthwatch.monitor.exceptions import NotificationError
from healthwatch.monitor.formatters import format_alert
from healthwatch.monitor.types import NotificationMessage

# Dedicated structured logger for notification records.
notification_logger = structlog.get_logger("notification_log")

logger = structlog.get_logger(__name__)


class NotificationDispatcher:
    """Routes alerts to notification channels.

    - Every notification is logged via *notification_logger*.
    - Each selected channel is sent to independently, bounded by
      *send_timeout_secs*; one failing channel never blocks the others.
    - Failures are logged and reported in the result, never retried.
    """

    def __init__(
        self,
        channels: list[NotificationChannel] | None = None,
        send_timeout_secs: float = 10.0,
        clock: Clock | None = None,
    ) -> None:
        self._channels: list[NotificationChannel] = channels or []
        self._send_timeout_secs = send_timeout_secs
        self._escalation = EscalationScheduler(self._escalate, clock or SystemClock())

    @property
    def channels(self) -> list[NotificationChannel]:
        return list(self._channels)

    @property
    def escalation(self) -> EscalationScheduler:
        return self._escalation

    def select_channels(self, names: list[str] | None = None) -> list[NotificationChannel]:
        """Channels matching *names* (by name or type); all channels if empty."""
        if not names:
            return list(self._channels)
        wanted = set(names)
        return [
            ch for ch in self._channels
            if ch.name in wanted or ch.channel_type.value in wanted
        ]

    async def notify(
        self,
        alert: Alert,
        channels: list[str] | None = None,
        assignees: list[str] | None = None,
    ) -> dict[str, bool]:
        """Send *alert* to the selected channels. Returns success per channel name."""
        msg = format_alert(alert, assignees)
        targets = self.select_channels(channels)
        self._log_notification(msg, targets)
        if not targets:
            logger.warning("no_channels_selected", key=alert.key, requested=channels)
            return {}

        outcomes = await asyncio.gather(*(self._send_one(ch, msg) for ch in targets))
        return {ch.name: ok for ch, ok in zip(targets, outcomes)}

    # ── Escalation ──────────────────────────────────────────────

    def arm_escalation(
        self,
        alert: Alert,
        policies: list[EscalationPolicy],
        lookup: AlertLookup,
    ) -> int:
        return self._escalation.arm(alert, policies, lookup)

    def cancel_escalation(self, alert_id: str) -> int:
        return self._escalation.cancel(alert_id)

    async def _escalate(
        self,
        alert: Alert,
        channels: list[str] | None,
        assignees: list[str],
    ) -> dict[str, bool]:
        return await self.notify(alert, channels, assignees)

    # ── Internal ────────────────────────────────────────────────

    async def _send_one(self, ch: NotificationChannel, msg: NotificationMessage) -> bool:
        try:
            ok = await asyncio.wait_for(ch.send(msg), timeout=self._send_timeout_secs)
            if not ok:
                raise NotificationError(ch.name, "channel reported failure")
            return True
        except asyncio.TimeoutError:
            err = NotificationError(ch.name, f"timed out after {self._send_timeout_secs}s")
            logger.warning("notification_failed", channel=ch.name, key=msg.key, error=str(err))
        except NotificationError as err:
            logger.warning("notification_failed", channel=ch.name, key=msg.key, error=str(err))
        except Exception:
            logger.exception("channel_dispatch_error", channel=ch.name, key=msg.key)
        return False

    def _log_notification(self, msg: NotificationMessage, targets: list[NotificationChannel]) -> None:
        notification_logger.info(
            "notification",
            alert_id=msg.alert_id,
            key=msg.key,
            status=msg.status.value,
            severity=msg.severity.value,
            title=msg.title,
            fields=msg.fields,
            assignees=msg.assignees,
            channels=[ch.name for ch in targets],
        )

    # ── Lifecycle ───────────────────────────────────────────────

    async def close(self) -> None:
        await self._escalation.cancel_all()
        for ch in self._channels:
            try:
                await ch.close()
            except Exception:
                logger.exception("channel_close_error", channel=ch.name)
