"""Metric storage — bounded per-series time series."""

from healthwatch.metrics.exceptions import InvalidMetricError, MetricError
from healthwatch.metrics.store import (
    MetricStore,
    aggregate,
    label_key,
    mean,
    nearest_rank_percentile,
)

__all__ = [
    "InvalidMetricError",
    "MetricError",
    "MetricStore",
    "aggregate",
    "label_key",
    "mean",
    "nearest_rank_percentile",
]
