"""Alert evaluation and lifecycle management."""

from healthwatch.alerting.evaluator import ThresholdEvaluator, rule_key, sustained_window
from healthwatch.alerting.exceptions import AlertingError, EvaluationSkipped, InvalidSilenceError
from healthwatch.alerting.manager import AlertManager
from healthwatch.alerting.silences import Silence, matches_pattern
from healthwatch.alerting.types import Alert, EvaluationOutcome, EvaluationResult

__all__ = [
    "Alert",
    "AlertManager",
    "AlertingError",
    "EvaluationOutcome",
    "EvaluationResult",
    "EvaluationSkipped",
    "InvalidSilenceError",
    "Silence",
    "ThresholdEvaluator",
    "matches_pattern",
    "rule_key",
    "sustained_window",
]
