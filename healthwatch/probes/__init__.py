"""Health probes, synthetic scenarios, error intake and metric collectors."""

from healthwatch.probes.base import HttpProbe, Probe
from healthwatch.probes.collectors import (
    CallableCollector,
    MetricCollector,
    SystemMetricsCollector,
    collect_into,
)
from healthwatch.probes.errors import (
    ERROR_COUNT_METRIC,
    NEW_ERROR_RULE_ID,
    ErrorTracker,
    error_alert_key,
)
from healthwatch.probes.exceptions import CollectorError, ProbeError, ProbeTimeoutError
from healthwatch.probes.health import (
    HEALTH_RULE_ID,
    HEALTH_STATUS_METRIC,
    RESPONSE_TIME_METRIC,
    HealthChecker,
    health_alert_key,
)
from healthwatch.probes.synthetic import (
    SCENARIO_DURATION_METRIC,
    SCENARIO_RULE_ID,
    ScenarioRunner,
    scenario_alert_key,
)

__all__ = [
    "ERROR_COUNT_METRIC",
    "HEALTH_RULE_ID",
    "HEALTH_STATUS_METRIC",
    "NEW_ERROR_RULE_ID",
    "RESPONSE_TIME_METRIC",
    "SCENARIO_DURATION_METRIC",
    "SCENARIO_RULE_ID",
    "CallableCollector",
    "CollectorError",
    "ErrorTracker",
    "HealthChecker",
    "HttpProbe",
    "MetricCollector",
    "Probe",
    "ProbeError",
    "ProbeTimeoutError",
    "ScenarioRunner",
    "SystemMetricsCollector",
    "collect_into",
    "error_alert_key",
    "health_alert_key",
    "scenario_alert_key",
]
