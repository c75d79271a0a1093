"""ReportAggregator — read-side rollups over the MetricStore and alert history.

Every method tolerates empty series: a freshly started engine has no
history, so reductions over nothing return None (reports) or 0.0
(dashboard) instead of raising.
"""

from __future__ import annotations

import math
from collections.abc import Callable

import structlog

from healthwatch.alerting.manager import AlertManager
from healthwatch.core.clock import Clock, SystemClock
from healthwatch.core.types import AlertStatus, ReportPeriod, Severity, TimeRange
from healthwatch.metrics.store import MetricStore, mean, nearest_rank_percentile
from healthwatch.probes.errors import ERROR_COUNT_METRIC
from healthwatch.probes.health import HEALTH_STATUS_METRIC, RESPONSE_TIME_METRIC
from healthwatch.reporting.types import (
    AlertSummary,
    Dashboard,
    ErrorSummary,
    LatencySummary,
    OverallStatus,
    Report,
    Trend,
    TrendSummary,
)

logger = structlog.stdlib.get_logger()

ERROR_RATE_METRIC = "error_rate"
THROUGHPUT_METRIC = "throughput"

# error_rate samples above this count as spikes.
ERROR_SPIKE_THRESHOLD = 5.0
# Relative change under which a trend is reported as stable.
TREND_TOLERANCE = 0.05

HealthStatusFn = Callable[[], dict[str, bool]]


class ReportAggregator:
    """Computes availability, latency, error and alert rollups.

    Usage::

        aggregator = ReportAggregator(store, manager, checker.status)
        report = aggregator.generate_report(ReportPeriod.DAILY)
        snapshot = aggregator.dashboard()
    """

    def __init__(
        self,
        store: MetricStore,
        alert_manager: AlertManager,
        health_status: HealthStatusFn | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._store = store
        self._alert_manager = alert_manager
        self._health_status = health_status or dict
        self._clock = clock or SystemClock()

    # ── Availability ────────────────────────────────────────────

    def availability(self, window: TimeRange | None = None, endpoint: str | None = None) -> float | None:
        """Percentage of health samples that were healthy; None without samples."""
        labels = {"endpoint": endpoint} if endpoint is not None else None
        return _percent_healthy(self._store.values(HEALTH_STATUS_METRIC, window, labels))

    def endpoint_availability(self, window: TimeRange | None = None) -> dict[str, float | None]:
        result: dict[str, float | None] = {}
        for labels in self._store.series(HEALTH_STATUS_METRIC):
            name = labels.get("endpoint")
            if name is not None:
                result[name] = self.availability(window, name)
        return dict(sorted(result.items()))

    # ── Performance / errors ────────────────────────────────────

    def latency_summary(self, window: TimeRange | None = None) -> LatencySummary:
        values = self._store.values(RESPONSE_TIME_METRIC, window)
        return LatencySummary(
            samples=len(values),
            average_ms=mean(values),
            p50_ms=nearest_rank_percentile(values, 50),
            p95_ms=nearest_rank_percentile(values, 95),
            p99_ms=nearest_rank_percentile(values, 99),
            max_ms=max(values) if values else None,
            average_throughput=self._store.average(THROUGHPUT_METRIC, window),
        )

    def error_summary(self, window: TimeRange | None = None) -> ErrorSummary:
        rates = self._store.values(ERROR_RATE_METRIC, window)
        return ErrorSummary(
            average_error_rate=mean(rates),
            total_errors=sum(self._store.values(ERROR_COUNT_METRIC, window)),
            error_spikes=sum(1 for v in rates if v > ERROR_SPIKE_THRESHOLD),
        )

    # ── Alerts ──────────────────────────────────────────────────

    def alert_summary(self, window: TimeRange | None = None) -> AlertSummary:
        alerts = self._alert_manager.history(window)
        durations = [a.duration_secs for a in alerts if a.duration_secs is not None]
        avg_minutes = mean(d / 60.0 for d in durations)
        return AlertSummary(
            total_alerts=len(alerts),
            critical_alerts=sum(1 for a in alerts if a.severity is Severity.CRITICAL),
            warning_alerts=sum(1 for a in alerts if a.severity is Severity.WARNING),
            info_alerts=sum(1 for a in alerts if a.severity is Severity.INFO),
            active_alerts=sum(1 for a in alerts if a.status is AlertStatus.ACTIVE),
            average_resolution_minutes=round(avg_minutes, 2) if avg_minutes is not None else None,
        )

    # ── Trends ──────────────────────────────────────────────────

    def trends(self, window: TimeRange) -> TrendSummary:
        """Compare the first and second half of *window* for each headline metric."""
        first, second = self._halves(window)
        return TrendSummary(
            response_time=_trend(
                self._store.average(RESPONSE_TIME_METRIC, first),
                self._store.average(RESPONSE_TIME_METRIC, second),
                higher_is_better=False,
            ),
            error_rate=_trend(
                self._store.average(ERROR_RATE_METRIC, first),
                self._store.average(ERROR_RATE_METRIC, second),
                higher_is_better=False,
            ),
            availability=_trend(
                self.availability(first),
                self.availability(second),
                higher_is_better=True,
            ),
        )

    # ── Status / dashboard / reports ────────────────────────────

    def overall_status(self) -> OverallStatus:
        active = self._alert_manager.get_active_alerts()
        if any(not ok for ok in self._health_status().values()):
            return OverallStatus.UNHEALTHY
        if any(a.severity is Severity.CRITICAL for a in active):
            return OverallStatus.UNHEALTHY
        if active:
            return OverallStatus.DEGRADED
        return OverallStatus.HEALTHY

    def dashboard(self) -> Dashboard:
        """Last-hour overview."""
        now = self._clock.now()
        hour = TimeRange.last(3600, now)
        p95 = nearest_rank_percentile(self._store.values(RESPONSE_TIME_METRIC, hour), 95)
        return Dashboard(
            generated_at=now,
            status=self.overall_status(),
            active_alerts=len(self._alert_manager.get_active_alerts()),
            response_time_ms=round(p95 or 0.0, 2),
            error_rate=self._average_or_zero(ERROR_RATE_METRIC, hour),
            throughput=self._average_or_zero(THROUGHPUT_METRIC, hour),
            cpu_usage=self._average_or_zero("cpu_usage", hour),
            memory_usage=self._average_or_zero("memory_usage", hour),
            disk_usage=self._average_or_zero("disk_usage", hour),
            services=dict(sorted(self._health_status().items())),
        )

    def generate_report(self, period: ReportPeriod | str) -> Report:
        """Report over the trailing day, week or month."""
        period = ReportPeriod(period)
        now = self._clock.now()
        window = TimeRange.last(period.seconds, now)
        report = Report(
            period=period,
            window=window,
            generated_at=now,
            availability=self.availability(window),
            endpoint_availability=self.endpoint_availability(window),
            performance=self.latency_summary(window),
            errors=self.error_summary(window),
            alerts=self.alert_summary(window),
            trends=self.trends(window),
        )
        logger.info(
            "report_generated",
            period=period.value,
            availability=report.availability,
            total_alerts=report.alerts.total_alerts,
        )
        return report

    # ── Internal ────────────────────────────────────────────────

    def _average_or_zero(self, name: str, window: TimeRange) -> float:
        avg = self._store.average(name, window)
        return round(avg, 2) if avg is not None else 0.0

    def _halves(self, window: TimeRange) -> tuple[TimeRange, TimeRange]:
        end = window.end if window.end is not None else self._clock.now()
        start = window.start
        if start is None:
            first_points = [
                p for name in (RESPONSE_TIME_METRIC, ERROR_RATE_METRIC, HEALTH_STATUS_METRIC)
                for p in self._store.query(name, window)[:1]
            ]
            start = min((p.timestamp for p in first_points), default=end)
        mid = start + (end - start) / 2
        # The midpoint sample belongs to the second half only.
        return (
            TimeRange(start=start, end=math.nextafter(mid, -math.inf)),
            TimeRange(start=mid, end=end),
        )


def _percent_healthy(values: list[float]) -> float | None:
    if not values:
        return None
    healthy = sum(1 for v in values if v >= 1.0)
    return healthy / len(values) * 100.0


def _trend(before: float | None, after: float | None, *, higher_is_better: bool) -> Trend:
    if before is None or after is None:
        return Trend.STABLE
    if before == 0:
        if after == 0:
            return Trend.STABLE
        change = math.copysign(math.inf, after)
    else:
        change = (after - before) / abs(before)
    if abs(change) <= TREND_TOLERANCE:
        return Trend.STABLE
    improved = change > 0 if higher_is_better else change < 0
    return Trend.IMPROVING if improved else Trend.DEGRADING
