"""Read-side reporting: rollups, reports, dashboard snapshot and JSON API."""

from healthwatch.reporting.aggregator import ReportAggregator
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

__all__ = [
    "AlertSummary",
    "Dashboard",
    "ErrorSummary",
    "LatencySummary",
    "OverallStatus",
    "Report",
    "ReportAggregator",
    "Trend",
    "TrendSummary",
]
