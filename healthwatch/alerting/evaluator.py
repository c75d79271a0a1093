"""ThresholdEvaluator — sustained-window rule evaluation on a fixed tick."""

from __future__ import annotations

import structlog

from healthwatch.alerting.exceptions import EvaluationSkipped
from healthwatch.alerting.manager import AlertManager
from healthwatch.alerting.types import EvaluationOutcome, EvaluationResult
from healthwatch.core.clock import Clock, SystemClock
from healthwatch.core.config import AlertRule
from healthwatch.core.scheduler import PeriodicTask
from healthwatch.core.types import Aggregate, Metric
from healthwatch.metrics.store import LabelKey, MetricStore, aggregate

logger = structlog.stdlib.get_logger()


def rule_key(rule_id: str, labels: LabelKey) -> str:
    """Alert key for one rule/series pair: ``rule`` or ``rule{a=1,b=2}``."""
    if not labels:
        return rule_id
    inner = ",".join(f"{k}={v}" for k, v in labels)
    return f"{rule_id}{{{inner}}}"


def sustained_window(points: list[Metric], now: float, duration_secs: float) -> list[Metric]:
    """Samples covering ``[now - duration, now]``.

    The window starts with the last sample at or before the window start,
    i.e. the value in effect when the window opened.

    Raises:
        EvaluationSkipped: the series does not yet cover the full duration,
            or has no sample inside the window.
    """
    points = [p for p in points if p.timestamp <= now]
    if not points:
        raise EvaluationSkipped("no samples")
    if duration_secs <= 0:
        return [points[-1]]

    start = now - duration_secs
    anchor_idx = None
    for i, p in enumerate(points):
        if p.timestamp <= start:
            anchor_idx = i
    if anchor_idx is None:
        raise EvaluationSkipped(
            f"window covers {now - points[0].timestamp:.0f}s of {duration_secs:.0f}s"
        )
    window = points[anchor_idx:]
    if window[-1].timestamp < start:
        raise EvaluationSkipped("no samples inside window")
    return window


class ThresholdEvaluator:
    """Evaluates enabled rules against the MetricStore and drives the AlertManager.

    Each rule is evaluated per series: a rule on ``error_rate`` with no label
    filter produces one independent alert per ``error_rate`` label-set.

    Usage::

        evaluator = ThresholdEvaluator(settings.rules, store, manager)
        results = await evaluator.evaluate_once()
        await evaluator.start()   # every evaluation_interval_secs
    """

    def __init__(
        self,
        rules: list[AlertRule],
        store: MetricStore,
        alert_manager: AlertManager,
        clock: Clock | None = None,
        interval_secs: float = 60.0,
    ) -> None:
        self._rules = list(rules)
        self._store = store
        self._alert_manager = alert_manager
        self._clock = clock or SystemClock()
        self._task = PeriodicTask(
            "threshold_evaluator", interval_secs, self._tick, clock=self._clock,
        )

    @property
    def rules(self) -> list[AlertRule]:
        return list(self._rules)

    @property
    def running(self) -> bool:
        return self._task.running

    async def start(self) -> None:
        await self._task.start()
        logger.info("evaluator_started", rules=len(self._rules))

    async def stop(self) -> None:
        await self._task.stop()
        logger.info("evaluator_stopped")

    async def evaluate_once(self) -> list[EvaluationResult]:
        """Evaluate every enabled rule once at the clock's current time."""
        results: list[EvaluationResult] = []
        for rule in self._rules:
            if not rule.enabled:
                continue
            try:
                results.extend(await self.evaluate_rule(rule))
            except Exception:
                logger.exception("rule_evaluation_error", rule_id=rule.id)
        return results

    async def evaluate_rule(self, rule: AlertRule) -> list[EvaluationResult]:
        """Evaluate one rule against each of its matching series."""
        now = self._clock.now()
        by_series = self._store.query_series(rule.metric, where=rule.labels or None)
        if not by_series:
            logger.debug("rule_skipped", rule_id=rule.id, reason="no series")
            return [
                EvaluationResult(
                    rule_id=rule.id,
                    key=rule_key(rule.id, ()),
                    outcome=EvaluationOutcome.SKIPPED,
                    reason="no series",
                )
            ]

        results = []
        for labels, points in sorted(by_series.items()):
            results.append(await self._evaluate_series(rule, labels, points, now))
        return results

    async def _tick(self) -> None:
        results = await self.evaluate_once()
        fired = sum(1 for r in results if r.outcome is EvaluationOutcome.TRIGGERED)
        resolved = sum(1 for r in results if r.outcome is EvaluationOutcome.RESOLVED)
        logger.debug(
            "evaluation_tick",
            results=len(results),
            triggered=fired,
            resolved=resolved,
        )

    async def _evaluate_series(
        self,
        rule: AlertRule,
        labels: LabelKey,
        points: list[Metric],
        now: float,
    ) -> EvaluationResult:
        key = rule_key(rule.id, labels)
        try:
            window = sustained_window(points, now, rule.duration_secs)
        except EvaluationSkipped as exc:
            logger.debug("rule_skipped", rule_id=rule.id, key=key, reason=str(exc))
            return EvaluationResult(
                rule_id=rule.id,
                key=key,
                outcome=EvaluationOutcome.SKIPPED,
                reason=str(exc),
            )

        values = [p.value for p in window]
        value = aggregate(values, rule.aggregate)
        if value is None:
            logger.debug("rule_skipped", rule_id=rule.id, key=key, reason="empty window")
            return EvaluationResult(
                rule_id=rule.id,
                key=key,
                outcome=EvaluationOutcome.SKIPPED,
                reason="empty window",
            )

        if rule.aggregate is Aggregate.LAST:
            violating = [rule.operator.compare(v, rule.threshold) for v in values]
            sustained = all(violating)
            latest_ok = not violating[-1]
        else:
            sustained = rule.operator.compare(value, rule.threshold)
            latest_ok = not sustained

        result = EvaluationResult(
            rule_id=rule.id,
            key=key,
            outcome=EvaluationOutcome.PENDING,
            value=value,
            samples=len(values),
        )

        if sustained:
            await self._alert_manager.trigger(
                key,
                rule_id=rule.id,
                metric=rule.metric,
                severity=rule.severity,
                description=_describe(rule, value),
                current_value=value,
                threshold=rule.threshold,
                labels=dict(labels),
                channels=rule.channels,
            )
            result.outcome = EvaluationOutcome.TRIGGERED
        elif latest_ok:
            resolved = await self._alert_manager.resolve(key)
            result.outcome = (
                EvaluationOutcome.RESOLVED if resolved is not None else EvaluationOutcome.OK
            )
        else:
            result.reason = "violation not yet sustained"
        return result


def _describe(rule: AlertRule, value: float) -> str:
    if rule.description:
        return rule.description
    title = rule.name or rule.id
    return (
        f"{title}: {rule.metric} {rule.aggregate.value}={value:g} "
        f"{rule.operator.value} {rule.threshold:g}"
    )
