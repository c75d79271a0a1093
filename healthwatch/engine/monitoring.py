"""MonitoringEngine — one explicit instance wiring store, checks, rules and alerts."""

from __future__ import annotations

from collections.abc import Mapping
from types import TracebackType

import structlog

from healthwatch.alerting.evaluator import ThresholdEvaluator
from healthwatch.alerting.manager import AlertManager
from healthwatch.alerting.silences import Silence
from healthwatch.alerting.types import Alert, EvaluationResult
from healthwatch.core.clock import Clock, SystemClock
from healthwatch.core.config import Settings
from healthwatch.core.scheduler import Scheduler, TickFn
from healthwatch.core.types import AlertStatus, Metric, ReportPeriod, Severity, TimeRange
from healthwatch.metrics.store import MetricStore
from healthwatch.monitor.channels import NotificationChannel
from healthwatch.monitor.factory import create_dispatcher
from healthwatch.probes.base import HttpProbe, Probe
from healthwatch.probes.collectors import MetricCollector, SystemMetricsCollector, collect_into
from healthwatch.probes.errors import ErrorTracker
from healthwatch.probes.health import HealthChecker
from healthwatch.probes.synthetic import ScenarioRunner
from healthwatch.reporting.aggregator import ReportAggregator
from healthwatch.reporting.types import Dashboard, OverallStatus, Report

logger = structlog.stdlib.get_logger()

# Upper bound on how often expired points are swept out of the store.
PRUNE_INTERVAL_SECS = 3600.0


class MonitoringEngine:
    """Owns every runtime component; nothing is shared between instances.

    The engine does not load configuration itself; pass it validated
    Settings.  Probes, channels, collectors and the clock are injectable so
    tests can run the whole pipeline without network or wall-clock waits.

    Usage::

        settings = load_settings("config/settings.yaml")
        async with MonitoringEngine(settings) as engine:
            ...
            report = engine.generate_report("daily")
    """

    def __init__(
        self,
        settings: Settings,
        *,
        probe: Probe | None = None,
        channels: list[NotificationChannel] | None = None,
        collectors: list[MetricCollector] | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._settings = settings
        self._clock = clock or SystemClock()
        probe = probe or HttpProbe()
        cfg = settings.engine

        self.store = MetricStore(
            max_points=cfg.retention_points,
            max_age_secs=cfg.retention_secs,
            clock=self._clock,
        )
        self.dispatcher = create_dispatcher(settings, channels, clock=self._clock)
        self.alert_manager = AlertManager(
            self.dispatcher,
            settings.escalation_policies,
            clock=self._clock,
            max_history=cfg.max_alert_history,
        )
        self.health_checker = HealthChecker(
            settings.health_checks,
            self.store,
            self.alert_manager,
            probe=probe,
            clock=self._clock,
        )
        self.scenario_runner = ScenarioRunner(
            settings.synthetic_scenarios,
            self.store,
            self.alert_manager,
            probe=probe,
            clock=self._clock,
        )
        self.error_tracker = ErrorTracker(self.store, self.alert_manager, settings.error_tracking)
        self.evaluator = ThresholdEvaluator(
            settings.rules,
            self.store,
            self.alert_manager,
            clock=self._clock,
            interval_secs=cfg.evaluation_interval_secs,
        )
        self.aggregator = ReportAggregator(
            self.store,
            self.alert_manager,
            self.health_checker.status,
            clock=self._clock,
        )

        self._collectors = list(collectors or [])
        if settings.collectors.system_metrics:
            self._collectors.append(SystemMetricsCollector(
                interval_secs=settings.collectors.interval_secs,
                host_label=settings.collectors.host_label,
                timeout_secs=settings.collectors.timeout_secs,
            ))
        self._scheduler = Scheduler(self._clock)
        for collector in self._collectors:
            self._scheduler.add(
                f"collector:{collector.name}",
                collector.interval_secs,
                self._collect_fn(collector),
            )
        if cfg.retention_secs is not None:
            self._scheduler.add(
                "store:prune",
                min(cfg.retention_secs, PRUNE_INTERVAL_SECS),
                self._prune,
                run_immediately=False,
            )
        self._running = False

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def running(self) -> bool:
        return self._running

    @property
    def collectors(self) -> list[MetricCollector]:
        return list(self._collectors)

    # ── Lifecycle ───────────────────────────────────────────────

    async def start(self) -> None:
        """Apply configured silences and start every periodic loop."""
        if self._running:
            return
        self._running = True
        for rule in self._settings.silences:
            if rule.enabled:
                await self.alert_manager.silence(rule.pattern, rule.duration_secs, rule.reason)
        await self.health_checker.start()
        await self.scenario_runner.start()
        await self.evaluator.start()
        await self._scheduler.start_all()
        logger.info(
            "monitoring_engine_started",
            endpoints=len(self._settings.health_checks),
            scenarios=len(self.scenario_runner.scenarios),
            rules=len(self._settings.rules),
            channels=len(self.dispatcher.channels),
            collectors=len(self._collectors),
        )

    async def stop(self) -> None:
        """Cancel every loop and timer, then release channels and the probe.

        Safe to call on an engine that was never started (e.g. after
        ``run_once``).
        """
        self._running = False
        await self._scheduler.stop_all()
        await self.evaluator.stop()
        await self.scenario_runner.stop()
        await self.health_checker.stop()
        await self.alert_manager.close()
        await self.dispatcher.close()
        logger.info("monitoring_engine_stopped")

    async def __aenter__(self) -> MonitoringEngine:
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.stop()

    async def run_once(self) -> list[EvaluationResult]:
        """One synchronous pass: every check and scenario, every collector, one evaluation."""
        await self.health_checker.check_all()
        await self.scenario_runner.run_all()
        for collector in self._collectors:
            await self._collect_fn(collector)()
        return await self.evaluator.evaluate_once()

    # ── Writes ──────────────────────────────────────────────────

    def record(
        self,
        name: str,
        value: float,
        labels: Mapping[str, str] | None = None,
        timestamp: float | None = None,
    ) -> Metric:
        return self.store.record(name, value, labels, timestamp)

    async def track_error(
        self,
        error_type: str,
        url: str,
        message: str = "",
        severity: Severity | None = None,
    ) -> Alert | None:
        """Record an application error; may raise a ``new_error`` alert."""
        return await self.error_tracker.track(error_type, url, message, severity)

    async def silence(self, pattern: str, duration_secs: float, reason: str = "") -> Silence:
        return await self.alert_manager.silence(pattern, duration_secs, reason)

    async def unsilence(self, silence_id: str) -> bool:
        return await self.alert_manager.unsilence(silence_id)

    # ── Query surface (read-only) ───────────────────────────────

    def get_metric(
        self,
        name: str,
        time_range: TimeRange | None = None,
        labels: Mapping[str, str] | None = None,
    ) -> list[Metric]:
        return self.store.query(name, time_range, labels)

    def get_active_alerts(self) -> list[Alert]:
        return self.alert_manager.get_active_alerts()

    def get_alerts(self, status: AlertStatus | None = None) -> list[Alert]:
        return self.alert_manager.get_alerts(status)

    def get_health_status(self) -> dict[str, bool]:
        return self.health_checker.status()

    def overall_status(self) -> OverallStatus:
        return self.aggregator.overall_status()

    def generate_report(self, period: ReportPeriod | str) -> Report:
        return self.aggregator.generate_report(period)

    def dashboard(self) -> Dashboard:
        return self.aggregator.dashboard()

    # ── Internal ────────────────────────────────────────────────

    async def _prune(self) -> None:
        dropped = self.store.prune()
        if dropped:
            logger.debug("metric_store_pruned", points=dropped)

    def _collect_fn(self, collector: MetricCollector) -> TickFn:
        async def _collect() -> None:
            await collect_into(collector, self.store, self._settings.collectors.timeout_secs)

        return _collect
