"""Alerting exceptions."""

from __future__ import annotations

from healthwatch.core.exceptions import HealthwatchError


class AlertingError(HealthwatchError):
    """Base exception for alert management errors."""


class InvalidSilenceError(AlertingError):
    """A silence request had an empty pattern or a non-positive duration."""


class EvaluationSkipped(AlertingError):  # noqa: N818
    """A rule had too little data to evaluate (informational, not a failure)."""
