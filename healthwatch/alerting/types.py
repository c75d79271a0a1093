"""Runtime types for the alerting subsystem."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, Field

from healthwatch.core.types import AlertStatus, Severity


class Alert(BaseModel):
    """A live or historical alert. Mutated only by the AlertManager."""

    id: str
    key: str
    rule_id: str
    metric: str
    current_value: float
    threshold: float
    severity: Severity
    status: AlertStatus = AlertStatus.ACTIVE
    start_time: float
    end_time: float | None = None
    description: str = ""
    labels: dict[str, str] = Field(default_factory=dict)
    channels: list[str] = Field(default_factory=list)
    silenced_until: float | None = None
    silence_reason: str = ""
    notified: bool = False

    @property
    def is_live(self) -> bool:
        return self.status is not AlertStatus.RESOLVED

    @property
    def duration_secs(self) -> float | None:
        if self.end_time is None:
            return None
        return self.end_time - self.start_time


class EvaluationOutcome(StrEnum):
    """What one rule/series evaluation decided."""

    TRIGGERED = "TRIGGERED"
    RESOLVED = "RESOLVED"
    OK = "OK"
    PENDING = "PENDING"
    SKIPPED = "SKIPPED"


class EvaluationResult(BaseModel):
    """Result of evaluating one rule against one series."""

    rule_id: str
    key: str
    outcome: EvaluationOutcome
    value: float | None = None
    samples: int = 0
    reason: str = ""
