"""Pluggable metric collectors.

A collector produces a batch of ``MetricSample`` values each time it is
polled; the engine schedules ``collect_into`` on the collector's interval and
writes the samples into the MetricStore.
"""

from __future__ import annotations

import abc
import asyncio
from collections.abc import Awaitable, Callable, Iterable, Mapping

import psutil
import structlog

from healthwatch.core.types import MetricSample
from healthwatch.metrics.exceptions import InvalidMetricError
from healthwatch.metrics.store import MetricStore
from healthwatch.probes.exceptions import CollectorError

logger = structlog.stdlib.get_logger()

CollectorResult = Iterable[MetricSample] | Mapping[str, float]
CollectorFn = Callable[[], CollectorResult | Awaitable[CollectorResult]]


class MetricCollector(abc.ABC):
    """Base class for periodic metric sources."""

    def __init__(
        self,
        name: str,
        interval_secs: float = 60.0,
        timeout_secs: float | None = None,
    ) -> None:
        self._name = name
        self._interval_secs = interval_secs
        self._timeout_secs = timeout_secs

    @property
    def name(self) -> str:
        return self._name

    @property
    def interval_secs(self) -> float:
        return self._interval_secs

    @property
    def timeout_secs(self) -> float | None:
        """Per-poll limit; None defers to the caller's default."""
        return self._timeout_secs

    @abc.abstractmethod
    async def collect(self) -> list[MetricSample]:
        """Produce the current batch of samples.

        Raises:
            CollectorError: the source could not be read.
        """


class CallableCollector(MetricCollector):
    """Wraps a plain (sync or async) function.

    The function may return ``MetricSample`` objects or a ``{name: value}``
    mapping; mapping entries get *labels* attached.
    """

    def __init__(
        self,
        name: str,
        fn: CollectorFn,
        interval_secs: float = 60.0,
        labels: Mapping[str, str] | None = None,
        timeout_secs: float | None = None,
    ) -> None:
        super().__init__(name, interval_secs, timeout_secs)
        self._fn = fn
        self._labels = dict(labels or {})

    async def collect(self) -> list[MetricSample]:
        result = self._fn()
        if asyncio.iscoroutine(result) or isinstance(result, asyncio.Future):
            result = await result
        if isinstance(result, Mapping):
            return [
                MetricSample(name=k, value=v, labels=self._labels)
                for k, v in result.items()
            ]
        return list(result)


class SystemMetricsCollector(MetricCollector):
    """Host CPU, memory, disk and network gauges via psutil."""

    def __init__(
        self,
        interval_secs: float = 60.0,
        host_label: str = "localhost",
        disk_path: str = "/",
        timeout_secs: float | None = None,
    ) -> None:
        super().__init__("system", interval_secs, timeout_secs)
        self._labels = {"server": host_label}
        self._disk_path = disk_path

    async def collect(self) -> list[MetricSample]:
        try:
            readings = await asyncio.to_thread(self._read)
        except (OSError, psutil.Error) as exc:
            raise CollectorError(f"system metrics unavailable: {exc}") from exc
        return [
            MetricSample(name=name, value=value, labels=self._labels)
            for name, value in readings.items()
        ]

    def _read(self) -> dict[str, float]:
        net = psutil.net_io_counters()
        return {
            "cpu_usage": psutil.cpu_percent(interval=None),
            "memory_usage": psutil.virtual_memory().percent,
            "disk_usage": psutil.disk_usage(self._disk_path).percent,
            "network_bytes_sent": float(net.bytes_sent),
            "network_bytes_recv": float(net.bytes_recv),
        }


async def collect_into(
    collector: MetricCollector,
    store: MetricStore,
    timeout_secs: float | None = None,
) -> int:
    """Poll *collector* once and record its samples. Returns samples written.

    The poll is bounded by the collector's own ``timeout_secs``, else by
    *timeout_secs*.  Invalid samples are logged and skipped so one bad value
    cannot drop the rest of the batch.

    Raises:
        CollectorError: the collector failed or did not answer in time.
    """
    limit = collector.timeout_secs or timeout_secs
    try:
        samples = await asyncio.wait_for(collector.collect(), timeout=limit)
    except asyncio.TimeoutError as exc:
        raise CollectorError(f"{collector.name}: timed out after {limit}s") from exc

    written = 0
    for sample in samples:
        try:
            store.record(sample.name, sample.value, sample.labels)
        except InvalidMetricError:
            logger.warning(
                "collector_sample_rejected",
                collector=collector.name,
                metric=sample.name,
            )
            continue
        written += 1
    logger.debug("collector_polled", collector=collector.name, samples=written)
    return written
