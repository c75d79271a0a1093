"""Core module — config, types, clock, scheduler, logging."""

from healthwatch.core.clock import Clock, ManualClock, SystemClock
from healthwatch.core.config import Settings, get_settings, load_settings, reset_settings
from healthwatch.core.exceptions import HealthwatchError, InvalidConfigError
from healthwatch.core.logging import setup_logging
from healthwatch.core.scheduler import PeriodicTask, Scheduler
from healthwatch.core.types import (
    AlertStatus,
    ComparisonOperator,
    Metric,
    ReportPeriod,
    Severity,
    TimeRange,
)

__all__ = [
    "AlertStatus",
    "Clock",
    "ComparisonOperator",
    "HealthwatchError",
    "InvalidConfigError",
    "ManualClock",
    "Metric",
    "PeriodicTask",
    "ReportPeriod",
    "Scheduler",
    "Settings",
    "Severity",
    "SystemClock",
    "TimeRange",
    "get_settings",
    "load_settings",
    "reset_settings",
    "setup_logging",
]
