"""Notification exceptions."""

from __future__ import annotations

from healthwatch.core.exceptions import HealthwatchError


class NotificationError(HealthwatchError):
    """A channel failed to deliver a message (logged, never retried)."""

    def __init__(self, channel: str, reason: str) -> None:
        self.channel = channel
        self.reason = reason
        super().__init__(f"{channel}: {reason}")
