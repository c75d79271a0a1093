"""Metric store exceptions."""

from __future__ import annotations

from healthwatch.core.exceptions import HealthwatchError


class MetricError(HealthwatchError):
    """Base exception for metric store errors."""


class InvalidMetricError(MetricError):
    """A metric write or query was malformed (empty name, bad value, bad percentile)."""
