"""Domain types for the notification subsystem."""

from __future__ import annotations

import time
from typing import Any

from pydantic import BaseModel, Field

from healthwatch.core.types import AlertStatus, Severity


class NotificationMessage(BaseModel):
    """Normalised alert notification ready for dispatch to channels."""

    alert_id: str
    key: str
    status: AlertStatus
    severity: Severity
    title: str
    body: str = ""
    fields: dict[str, str] = Field(default_factory=dict)
    assignees: list[str] = Field(default_factory=list)
    timestamp: float = Field(default_factory=time.time)
    raw: dict[str, Any] = Field(default_factory=dict)

    @property
    def is_resolved(self) -> bool:
        return self.status is AlertStatus.RESOLVED
