"""HealthChecker — scheduled endpoint probes with state-change alerting."""

from __future__ import annotations

import asyncio
from functools import partial
from typing import TYPE_CHECKING

import structlog

from healthwatch.core.clock import Clock, SystemClock
from healthwatch.core.config import HealthCheckEndpoint
from healthwatch.core.scheduler import PeriodicTask
from healthwatch.core.types import HealthCheckResult, ProbeResult
from healthwatch.metrics.store import MetricStore
from healthwatch.probes.base import HttpProbe, Probe
from healthwatch.probes.exceptions import ProbeError

if TYPE_CHECKING:
    from healthwatch.alerting.manager import AlertManager

logger = structlog.stdlib.get_logger()

HEALTH_STATUS_METRIC = "health_check_status"
RESPONSE_TIME_METRIC = "health_check_response_time"
HEALTH_RULE_ID = "health_check_failed"


def health_alert_key(endpoint_name: str) -> str:
    """Alert key used for an endpoint's liveness alert."""
    return f"health_check_{endpoint_name}"


class HealthChecker:
    """Probes every configured endpoint on its own interval.

    A check is healthy when the probe responded within the timeout, faster
    than ``expected_response_time_ms``, and with the expected status code.
    Failed attempts are retried up to ``retries`` times within the same
    check.  Only transitions raise alerts:

    - healthy → unhealthy: ``AlertManager.trigger(health_check_<name>)``
    - unhealthy → healthy: ``AlertManager.resolve(health_check_<name>)``

    The very first check of an endpoint never alerts.
    """

    def __init__(
        self,
        endpoints: list[HealthCheckEndpoint],
        store: MetricStore,
        alert_manager: AlertManager | None = None,
        probe: Probe | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._endpoints = list(endpoints)
        self._store = store
        self._alerts = alert_manager
        self._probe = probe or HttpProbe()
        self._clock = clock or SystemClock()
        self._status: dict[str, bool] = {}
        self._results: dict[str, HealthCheckResult] = {}
        self._tasks: list[PeriodicTask] = []

    @property
    def endpoints(self) -> list[HealthCheckEndpoint]:
        return list(self._endpoints)

    @property
    def running(self) -> bool:
        return any(t.running for t in self._tasks)

    def status(self) -> dict[str, bool]:
        """Last known health per endpoint (endpoints never checked are absent)."""
        return dict(self._status)

    def last_results(self) -> dict[str, HealthCheckResult]:
        return {k: v.model_copy() for k, v in self._results.items()}

    # ── Lifecycle ───────────────────────────────────────────────

    async def start(self) -> None:
        """Start one independent loop per endpoint."""
        if self._tasks:
            return
        for endpoint in self._endpoints:
            task = PeriodicTask(
                f"health:{endpoint.name}",
                endpoint.interval_secs,
                partial(self.check_now, endpoint),
                clock=self._clock,
            )
            self._tasks.append(task)
            await task.start()
        logger.info("health_checks_started", endpoints=len(self._endpoints))

    async def stop(self) -> None:
        for task in self._tasks:
            await task.stop()
        self._tasks = []
        await self._probe.close()
        logger.info("health_checks_stopped")

    # ── Checks ──────────────────────────────────────────────────

    async def check_all(self) -> list[HealthCheckResult]:
        """Check every endpoint once, concurrently."""
        return list(await asyncio.gather(
            *(self.check_now(ep) for ep in self._endpoints),
        ))

    async def check_now(self, endpoint: HealthCheckEndpoint) -> HealthCheckResult:
        """Run one check (with retries) and apply state-change alerting."""
        labels = {"endpoint": endpoint.name}
        response: ProbeResult | None = None
        healthy = False
        error = ""
        attempts = 0

        for _ in range(1 + endpoint.retries):
            attempts += 1
            attempt, error = await self._attempt(endpoint)
            if attempt is not None:
                response = attempt
                healthy = _is_healthy(endpoint, attempt)
                if healthy:
                    error = ""
                    break
                error = _describe_unhealthy(endpoint, attempt)
            logger.debug(
                "health_check_attempt_failed",
                endpoint=endpoint.name,
                attempt=attempts,
                error=error,
            )

        if response is not None:
            self._store.record(RESPONSE_TIME_METRIC, response.latency_ms, labels)
        self._store.record(HEALTH_STATUS_METRIC, 1.0 if healthy else 0.0, labels)

        result = HealthCheckResult(
            endpoint=endpoint.name,
            healthy=healthy,
            attempts=attempts,
            status_code=response.status_code if response else None,
            latency_ms=response.latency_ms if response else None,
            error=error,
            checked_at=self._clock.now(),
        )
        previous = self._status.get(endpoint.name)
        self._status[endpoint.name] = healthy
        self._results[endpoint.name] = result

        logger.info(
            "health_check",
            endpoint=endpoint.name,
            healthy=healthy,
            latency_ms=result.latency_ms,
            attempts=attempts,
        )

        if previous is not None and previous != healthy:
            await self._on_transition(endpoint, healthy, result)
        return result

    async def _attempt(
        self, endpoint: HealthCheckEndpoint,
    ) -> tuple[ProbeResult | None, str]:
        try:
            result = await asyncio.wait_for(
                self._probe.probe(endpoint), timeout=endpoint.timeout_secs,
            )
        except asyncio.TimeoutError:
            return None, f"timed out after {endpoint.timeout_secs}s"
        except ProbeError as exc:
            return None, str(exc)
        except Exception as exc:
            logger.exception("probe_error", endpoint=endpoint.name)
            return None, f"{type(exc).__name__}: {exc}"
        return result, ""

    async def _on_transition(
        self,
        endpoint: HealthCheckEndpoint,
        healthy: bool,
        result: HealthCheckResult,
    ) -> None:
        if self._alerts is None:
            return
        key = health_alert_key(endpoint.name)
        if not healthy:
            logger.warning(
                "health_check_failed",
                endpoint=endpoint.name,
                url=endpoint.url,
                error=result.error,
            )
            await self._alerts.trigger(
                key,
                rule_id=HEALTH_RULE_ID,
                metric=HEALTH_RULE_ID,
                severity=endpoint.criticality.severity,
                description=f"Health check failed for {endpoint.name}: {endpoint.url}",
                current_value=0.0,
                threshold=1.0,
                labels={"endpoint": endpoint.name, "url": endpoint.url},
            )
        else:
            logger.info("health_check_recovered", endpoint=endpoint.name)
            await self._alerts.resolve(key)


def _is_healthy(endpoint: HealthCheckEndpoint, result: ProbeResult) -> bool:
    return (
        result.latency_ms < endpoint.expected_response_time_ms
        and result.status_code == endpoint.expected_status_code
    )


def _describe_unhealthy(endpoint: HealthCheckEndpoint, result: ProbeResult) -> str:
    if result.status_code != endpoint.expected_status_code:
        return (
            f"status {result.status_code} != expected {endpoint.expected_status_code}"
        )
    return (
        f"latency {result.latency_ms:.0f}ms >= expected "
        f"{endpoint.expected_response_time_ms:.0f}ms"
    )
