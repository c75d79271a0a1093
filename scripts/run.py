#!/usr/bin/env python3
"""Main entrypoint — builds the monitoring engine and runs it until interrupted.

Usage::

    # Run with default config
    python scripts/run.py

    # Custom config file
    python scripts/run.py --config config/settings.yaml

    # Override log level
    python scripts/run.py --log-level DEBUG

    # One pass of every check, then print a report and exit
    python scripts/run.py --report daily
"""

from __future__ import annotations

import argparse
import asyncio
import json
import signal
import sys

import structlog

from healthwatch.core.config import load_settings
from healthwatch.core.exceptions import InvalidConfigError
from healthwatch.core.logging import setup_logging
from healthwatch.core.types import ReportPeriod
from healthwatch.engine.monitoring import MonitoringEngine
from healthwatch.reporting.web_api import start_api_server

logger = structlog.get_logger(__name__)


async def report_once(engine: MonitoringEngine, period: ReportPeriod) -> int:
    """Run a single pass and print the report as JSON."""
    try:
        await engine.run_once()
        report = engine.generate_report(period)
    finally:
        await engine.stop()
    print(json.dumps(report.model_dump(mode="json"), indent=2))
    return 0


async def run(args: argparse.Namespace) -> int:
    """Start the engine and run until interrupted."""
    try:
        settings = load_settings(args.config)
    except InvalidConfigError as exc:
        print(f"Invalid configuration: {exc}", file=sys.stderr)
        return 2
    setup_logging(level=args.log_level, config=settings.logging)

    engine = MonitoringEngine(settings)

    if args.report is not None:
        return await report_once(engine, ReportPeriod(args.report))

    logger.info(
        "healthwatch_starting",
        endpoints=len(settings.health_checks),
        rules=len(settings.rules),
        channels=len(settings.channels),
        api=settings.api.enabled,
    )

    await engine.start()

    # ── Optional JSON API ────────────────────────────────────────
    runner = None
    if settings.api.enabled:
        password = settings.api.password.get_secret_value() if settings.api.password else None
        runner = await start_api_server(
            engine,
            host=settings.api.host,
            port=settings.api.port,
            username=settings.api.username,
            password=password,
        )
        logger.info("api_server_started", host=settings.api.host, port=settings.api.port)

    # ── Wait for shutdown signal ─────────────────────────────────
    stop_event = asyncio.Event()

    def _signal_handler() -> None:
        logger.info("shutdown_signal_received")
        stop_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _signal_handler)
        except NotImplementedError:
            # Windows: signal handlers not supported on ProactorEventLoop
            pass

    try:
        await stop_event.wait()
    except KeyboardInterrupt:
        logger.info("keyboard_interrupt")

    # ── Graceful shutdown ────────────────────────────────────────
    logger.info("healthwatch_shutting_down")

    if runner is not None:
        await runner.cleanup()
    await engine.stop()

    active = engine.get_active_alerts()
    logger.info(
        "healthwatch_stopped",
        active_alerts=len(active),
        health=engine.get_health_status(),
    )
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Run the healthwatch monitoring and alerting engine.",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to settings YAML (default: config/settings.yaml)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Log level override: DEBUG, INFO, WARNING, ERROR",
    )
    parser.add_argument(
        "--report",
        choices=[p.value for p in ReportPeriod],
        default=None,
        help="Run one pass, print a report of this period as JSON and exit",
    )
    args = parser.parse_args()

    code = asyncio.run(run(args))
    sys.exit(code)


if __name__ == "__main__":
    main()
