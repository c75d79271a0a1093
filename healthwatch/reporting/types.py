"""Report and dashboard models produced by the ReportAggregator."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, Field

from healthwatch.core.types import ReportPeriod, TimeRange


class Trend(StrEnum):
    IMPROVING = "improving"
    DEGRADING = "degrading"
    STABLE = "stable"


class OverallStatus(StrEnum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


class LatencySummary(BaseModel):
    """Response-time rollup in milliseconds. None fields mean no samples."""

    samples: int = 0
    average_ms: float | None = None
    p50_ms: float | None = None
    p95_ms: float | None = None
    p99_ms: float | None = None
    max_ms: float | None = None
    average_throughput: float | None = None


class ErrorSummary(BaseModel):
    average_error_rate: float | None = None
    total_errors: float = 0.0
    error_spikes: int = 0


class AlertSummary(BaseModel):
    total_alerts: int = 0
    critical_alerts: int = 0
    warning_alerts: int = 0
    info_alerts: int = 0
    active_alerts: int = 0
    average_resolution_minutes: float | None = None


class TrendSummary(BaseModel):
    response_time: Trend = Trend.STABLE
    error_rate: Trend = Trend.STABLE
    availability: Trend = Trend.STABLE


class Report(BaseModel):
    """Periodic availability/performance/alert report."""

    period: ReportPeriod
    window: TimeRange
    generated_at: float
    availability: float | None = None
    endpoint_availability: dict[str, float | None] = Field(default_factory=dict)
    performance: LatencySummary = LatencySummary()
    errors: ErrorSummary = ErrorSummary()
    alerts: AlertSummary = AlertSummary()
    trends: TrendSummary = TrendSummary()


class Dashboard(BaseModel):
    """Last-hour overview. Averages default to 0.0 when there is no data."""

    generated_at: float
    status: OverallStatus
    active_alerts: int = 0
    response_time_ms: float = 0.0
    error_rate: float = 0.0
    throughput: float = 0.0
    cpu_usage: float = 0.0
    memory_usage: float = 0.0
    disk_usage: float = 0.0
    services: dict[str, bool] = Field(default_factory=dict)
