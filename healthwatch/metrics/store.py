"""MetricStore — append-only, per-series time series with bounded retention.

A series is identified by ``(name, labels)``.  Each series keeps its points in
insertion order and evicts the oldest first once it exceeds its point cap or
its maximum age.  Eviction is per series, so a noisy series never pushes out
another series' history.
"""

from __future__ import annotations

import math
import threading
from collections import deque
from collections.abc import Iterable, Mapping

from healthwatch.core.clock import Clock, SystemClock
from healthwatch.core.types import Aggregate, Metric, TimeRange
from healthwatch.metrics.exceptions import InvalidMetricError

LabelKey = tuple[tuple[str, str], ...]


def label_key(labels: Mapping[str, str] | None) -> LabelKey:
    """Canonical, hashable form of a label-set."""
    if not labels:
        return ()
    return tuple(sorted((str(k), str(v)) for k, v in labels.items()))


def nearest_rank_percentile(values: Iterable[float], p: float) -> float | None:
    """Nearest-rank percentile; None for an empty input.

    ``index = ceil(p / 100 * n) - 1``, clamped to ``[0, n - 1]``.
    """
    if not 0 <= p <= 100:
        raise InvalidMetricError(f"percentile must be within [0, 100], got {p}")
    ordered = sorted(values)
    n = len(ordered)
    if n == 0:
        return None
    index = math.ceil(p / 100 * n) - 1
    return ordered[min(max(index, 0), n - 1)]


def mean(values: Iterable[float]) -> float | None:
    """Arithmetic mean; None for an empty input."""
    vals = list(values)
    if not vals:
        return None
    return sum(vals) / len(vals)


def aggregate(values: list[float], how: Aggregate) -> float | None:
    """Reduce an ordered window of values; None for an empty window."""
    if not values:
        return None
    if how is Aggregate.LAST:
        return values[-1]
    if how is Aggregate.AVG:
        return mean(values)
    if how is Aggregate.MIN:
        return min(values)
    if how is Aggregate.MAX:
        return max(values)
    return nearest_rank_percentile(values, float(how.value[1:]))


class MetricStore:
    """Thread-safe in-memory metric storage.

    Writes are serialised by a single lock; reads take a copy under the
    same lock and then filter outside of it.

    Usage::

        store = MetricStore(max_points=1000)
        store.record("cpu_usage", 42.0, {"server": "web-1"})
        points = store.query("cpu_usage", TimeRange.last(300, now))
        p95 = store.percentile("cpu_usage", None, 95)
    """

    def __init__(
        self,
        max_points: int = 1000,
        max_age_secs: float | None = None,
        clock: Clock | None = None,
    ) -> None:
        if max_points <= 0:
            raise ValueError("max_points must be positive")
        self._max_points = max_points
        self._max_age_secs = max_age_secs
        self._clock = clock or SystemClock()
        self._series: dict[str, dict[LabelKey, deque[Metric]]] = {}
        self._lock = threading.Lock()

    # ── Writes ──────────────────────────────────────────────────

    def record(
        self,
        name: str,
        value: float,
        labels: Mapping[str, str] | None = None,
        timestamp: float | None = None,
    ) -> Metric:
        """Append a point to the ``(name, labels)`` series.

        Raises:
            InvalidMetricError: empty name or non-finite value.
        """
        if not isinstance(name, str) or not name.strip():
            raise InvalidMetricError("metric name must be a non-empty string")
        try:
            numeric = float(value)
        except (TypeError, ValueError) as exc:
            raise InvalidMetricError(f"metric {name!r}: value {value!r} is not numeric") from exc
        if not math.isfinite(numeric):
            raise InvalidMetricError(f"metric {name!r}: value must be finite")

        key = label_key(labels)
        ts = self._clock.now() if timestamp is None else float(timestamp)
        point = Metric(name=name, value=numeric, timestamp=ts, labels=dict(key))

        with self._lock:
            by_labels = self._series.setdefault(name, {})
            series = by_labels.get(key)
            if series is None:
                series = deque(maxlen=self._max_points)
                by_labels[key] = series
            series.append(point)
            if self._max_age_secs is not None:
                cutoff = ts - self._max_age_secs
                while series and series[0].timestamp < cutoff:
                    series.popleft()
        return point

    def prune(self) -> int:
        """Drop points older than ``max_age_secs`` from every series.

        Series left empty are removed, and so are metric names with no
        series left.  Returns the number of points dropped.
        """
        if self._max_age_secs is None:
            return 0
        cutoff = self._clock.now() - self._max_age_secs
        dropped = 0
        with self._lock:
            for name in list(self._series):
                by_labels = self._series[name]
                for key in list(by_labels):
                    series = by_labels[key]
                    while series and series[0].timestamp < cutoff:
                        series.popleft()
                        dropped += 1
                    if not series:
                        del by_labels[key]
                if not by_labels:
                    del self._series[name]
        return dropped

    def clear(self, name: str | None = None) -> None:
        """Drop one metric's series, or everything."""
        with self._lock:
            if name is None:
                self._series.clear()
            else:
                self._series.pop(name, None)

    # ── Reads ───────────────────────────────────────────────────

    def names(self) -> list[str]:
        with self._lock:
            return sorted(self._series)

    def series(self, name: str) -> list[dict[str, str]]:
        """Label-sets recorded under *name*."""
        with self._lock:
            return [dict(k) for k in self._series.get(name, {})]

    def point_count(self, name: str | None = None) -> int:
        with self._lock:
            names = [name] if name is not None else list(self._series)
            return sum(
                len(s) for n in names for s in self._series.get(n, {}).values()
            )

    def query_series(
        self,
        name: str,
        time_range: TimeRange | None = None,
        where: Mapping[str, str] | None = None,
    ) -> dict[LabelKey, list[Metric]]:
        """Points per series, each in insertion order.

        *where* is a subset match: a series qualifies if it carries every
        given label with the given value.
        """
        with self._lock:
            snapshot = {k: list(v) for k, v in self._series.get(name, {}).items()}

        wanted = label_key(where)
        result: dict[LabelKey, list[Metric]] = {}
        for key, points in snapshot.items():
            if wanted and not set(wanted).issubset(key):
                continue
            if time_range is not None:
                points = [p for p in points if time_range.contains(p.timestamp)]
            result[key] = points
        return result

    def query(
        self,
        name: str,
        time_range: TimeRange | None = None,
        labels: Mapping[str, str] | None = None,
    ) -> list[Metric]:
        """Points for *name* within *time_range*.

        With *labels*, only the series whose label-set equals *labels*
        exactly is returned, in insertion order.  Without, all series are
        merged in timestamp order.  Missing data yields an empty list.
        """
        if labels is not None:
            key = label_key(labels)
            with self._lock:
                points = list(self._series.get(name, {}).get(key, ()))
            if time_range is not None:
                points = [p for p in points if time_range.contains(p.timestamp)]
            return points

        merged = [
            p for points in self.query_series(name, time_range).values() for p in points
        ]
        merged.sort(key=lambda p: p.timestamp)
        return merged

    def latest(self, name: str, labels: Mapping[str, str] | None = None) -> Metric | None:
        points = self.query(name, None, labels)
        if not points:
            return None
        if labels is not None:
            return points[-1]
        return max(points, key=lambda p: p.timestamp)

    def values(
        self,
        name: str,
        time_range: TimeRange | None = None,
        labels: Mapping[str, str] | None = None,
    ) -> list[float]:
        return [p.value for p in self.query(name, time_range, labels)]

    def average(
        self,
        name: str,
        time_range: TimeRange | None = None,
        labels: Mapping[str, str] | None = None,
    ) -> float | None:
        return mean(self.values(name, time_range, labels))

    def percentile(
        self,
        name: str,
        time_range: TimeRange | None,
        p: float,
        labels: Mapping[str, str] | None = None,
    ) -> float | None:
        return nearest_rank_percentile(self.values(name, time_range, labels), p)
