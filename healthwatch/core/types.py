"""Domain types shared across the engine — enums, metric points, probe results."""

from __future__ import annotations

import operator
from collections.abc import Callable
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class Severity(StrEnum):
    """Alert severity."""

    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


class AlertStatus(StrEnum):
    """Lifecycle state of a runtime alert."""

    ACTIVE = "active"
    RESOLVED = "resolved"
    SILENCED = "silenced"


class ComparisonOperator(StrEnum):
    """Comparison applied between a metric value and a rule threshold."""

    GT = ">"
    LT = "<"
    GE = ">="
    LE = "<="
    EQ = "=="

    def compare(self, value: float, threshold: float) -> bool:
        """Return True if *value* violates *threshold* under this operator."""
        return _OPERATORS[self](value, threshold)


def _is_close(a: float, b: float) -> bool:
    return abs(a - b) <= 1e-9 * max(1.0, abs(a), abs(b))


_OPERATORS: dict[ComparisonOperator, Callable[[float, float], bool]] = {
    ComparisonOperator.GT: operator.gt,
    ComparisonOperator.LT: operator.lt,
    ComparisonOperator.GE: operator.ge,
    ComparisonOperator.LE: operator.le,
    ComparisonOperator.EQ: _is_close,
}


class Aggregate(StrEnum):
    """How a rule reduces its evaluation window to a single value."""

    LAST = "last"
    AVG = "avg"
    MIN = "min"
    MAX = "max"
    P50 = "p50"
    P95 = "p95"
    P99 = "p99"


class ChannelType(StrEnum):
    """Notification channel transport."""

    EMAIL = "email"
    CHAT = "chat"
    PAGER = "pager"
    SMS = "sms"
    WEBHOOK = "webhook"


class Criticality(StrEnum):
    """How important a probed dependency is — drives health alert severity."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def severity(self) -> Severity:
        return Severity.CRITICAL if self is Criticality.HIGH else Severity.WARNING


class ReportPeriod(StrEnum):
    """Predefined report windows."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"

    @property
    def seconds(self) -> float:
        days = {"daily": 1, "weekly": 7, "monthly": 30}[self.value]
        return days * 24 * 3600.0


class Metric(BaseModel):
    """A single immutable time-series point."""

    model_config = ConfigDict(frozen=True)

    name: str
    value: float
    timestamp: float
    labels: dict[str, str] = Field(default_factory=dict)


class MetricSample(BaseModel):
    """A value produced by a collector, not yet timestamped."""

    name: str
    value: float
    labels: dict[str, str] = Field(default_factory=dict)


class TimeRange(BaseModel):
    """Inclusive time window in epoch seconds. Open ends are unbounded."""

    start: float | None = None
    end: float | None = None

    def contains(self, ts: float) -> bool:
        if self.start is not None and ts < self.start:
            return False
        if self.end is not None and ts > self.end:
            return False
        return True

    @classmethod
    def last(cls, seconds: float, now: float) -> TimeRange:
        """Window covering the *seconds* leading up to *now*."""
        return cls(start=now - seconds, end=now)


class ProbeResult(BaseModel):
    """Raw response of one probe attempt."""

    status_code: int
    latency_ms: float


class HealthCheckResult(BaseModel):
    """Outcome of one scheduled health check (after retries)."""

    endpoint: str
    healthy: bool
    attempts: int = 1
    status_code: int | None = None
    latency_ms: float | None = None
    error: str = ""
    checked_at: float = 0.0


class ScenarioResult(BaseModel):
    """Outcome of one synthetic scenario run."""

    scenario: str
    success: bool
    steps_run: int = 0
    failed_step: str | None = None
    duration_ms: float = 0.0
    error: str = ""
    checked_at: float = 0.0
