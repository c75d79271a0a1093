"""ScenarioRunner — scripted multi-step journeys run on a schedule."""

from __future__ import annotations

import asyncio
from functools import partial
from typing import TYPE_CHECKING

import structlog

from healthwatch.core.clock import Clock, SystemClock
from healthwatch.core.config import SyntheticScenario
from healthwatch.core.scheduler import PeriodicTask
from healthwatch.core.types import ProbeResult, ScenarioResult
from healthwatch.metrics.store import MetricStore
from healthwatch.probes.base import HttpProbe, Probe
from healthwatch.probes.exceptions import ProbeError

if TYPE_CHECKING:
    from healthwatch.alerting.manager import AlertManager

logger = structlog.stdlib.get_logger()

SCENARIO_DURATION_METRIC = "synthetic_scenario_duration"
SCENARIO_RULE_ID = "synthetic_scenario_failed"


def scenario_alert_key(scenario_name: str) -> str:
    """Alert key used for a scenario's failure alert."""
    return f"synthetic_{scenario_name}"


class ScenarioRunner:
    """Runs each enabled scenario's steps in order on its own interval.

    A run stops at the first step that errors, times out, returns an
    unexpected status or is slower than its ``expected_response_time_ms``.
    Every run records ``synthetic_scenario_duration{scenario,status}`` as the
    summed latency of the steps that answered.  A failed run triggers
    ``synthetic_<name>``; the next successful run resolves it.
    """

    def __init__(
        self,
        scenarios: list[SyntheticScenario],
        store: MetricStore,
        alert_manager: AlertManager | None = None,
        probe: Probe | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._scenarios = [s for s in scenarios if s.enabled]
        self._store = store
        self._alerts = alert_manager
        self._probe = probe or HttpProbe()
        self._clock = clock or SystemClock()
        self._results: dict[str, ScenarioResult] = {}
        self._tasks: list[PeriodicTask] = []

    @property
    def scenarios(self) -> list[SyntheticScenario]:
        return list(self._scenarios)

    @property
    def running(self) -> bool:
        return any(t.running for t in self._tasks)

    def status(self) -> dict[str, bool]:
        """Whether each scenario's last run passed (scenarios never run are absent)."""
        return {name: r.success for name, r in self._results.items()}

    def last_results(self) -> dict[str, ScenarioResult]:
        return {k: v.model_copy() for k, v in self._results.items()}

    # ── Lifecycle ───────────────────────────────────────────────

    async def start(self) -> None:
        if self._tasks:
            return
        for scenario in self._scenarios:
            task = PeriodicTask(
                f"synthetic:{scenario.name}",
                scenario.interval_secs,
                partial(self.run_now, scenario),
                clock=self._clock,
            )
            self._tasks.append(task)
            await task.start()
        logger.info("synthetic_monitoring_started", scenarios=len(self._scenarios))

    async def stop(self) -> None:
        for task in self._tasks:
            await task.stop()
        self._tasks = []
        await self._probe.close()
        logger.info("synthetic_monitoring_stopped")

    # ── Runs ────────────────────────────────────────────────────

    async def run_all(self) -> list[ScenarioResult]:
        return list(await asyncio.gather(
            *(self.run_now(s) for s in self._scenarios),
        ))

    async def run_now(self, scenario: SyntheticScenario) -> ScenarioResult:
        """Run every step of *scenario* once and apply failure alerting."""
        duration_ms = 0.0
        steps_run = 0
        failed_step: str | None = None
        error = ""

        for index, step in enumerate(scenario.steps):
            steps_run += 1
            label = step.name or str(index + 1)
            response, error = await self._attempt(scenario, index)
            if response is not None:
                duration_ms += response.latency_ms
                error = _describe_failure(step.expected_status_code,
                                          step.expected_response_time_ms, response)
            if error:
                failed_step = label
                break

        success = failed_step is None
        self._store.record(
            SCENARIO_DURATION_METRIC,
            duration_ms,
            {"scenario": scenario.name, "status": "success" if success else "failure"},
        )
        result = ScenarioResult(
            scenario=scenario.name,
            success=success,
            steps_run=steps_run,
            failed_step=failed_step,
            duration_ms=duration_ms,
            error=error,
            checked_at=self._clock.now(),
        )
        self._results[scenario.name] = result

        if success:
            logger.info("synthetic_scenario_passed", scenario=scenario.name,
                        duration_ms=duration_ms)
        else:
            logger.warning(
                "synthetic_scenario_failed",
                scenario=scenario.name,
                step=failed_step,
                error=error,
            )
        await self._apply_alert(scenario, result)
        return result

    async def _attempt(
        self, scenario: SyntheticScenario, index: int,
    ) -> tuple[ProbeResult | None, str]:
        endpoint = scenario.step_endpoint(index)
        try:
            result = await asyncio.wait_for(
                self._probe.probe(endpoint), timeout=endpoint.timeout_secs,
            )
        except asyncio.TimeoutError:
            return None, f"timed out after {endpoint.timeout_secs}s"
        except ProbeError as exc:
            return None, str(exc)
        except Exception as exc:
            logger.exception("synthetic_step_error", scenario=scenario.name, step=endpoint.name)
            return None, f"{type(exc).__name__}: {exc}"
        return result, ""

    async def _apply_alert(self, scenario: SyntheticScenario, result: ScenarioResult) -> None:
        if self._alerts is None:
            return
        key = scenario_alert_key(scenario.name)
        if result.success:
            await self._alerts.resolve(key)
            return
        await self._alerts.trigger(
            key,
            rule_id=SCENARIO_RULE_ID,
            metric=SCENARIO_RULE_ID,
            severity=scenario.severity,
            description=f"Synthetic scenario '{scenario.name}' failed: {result.error}",
            current_value=1.0,
            threshold=1.0,
            labels={"scenario": scenario.name},
        )


def _describe_failure(
    expected_status: int, expected_ms: float | None, result: ProbeResult,
) -> str:
    if result.status_code != expected_status:
        return f"status {result.status_code} != expected {expected_status}"
    if expected_ms is not None and result.latency_ms >= expected_ms:
        return f"latency {result.latency_ms:.0f}ms >= expected {expected_ms:.0f}ms"
    return ""
