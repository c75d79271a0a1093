"""Read-only JSON query API served over aiohttp.

Exposes:
- ``GET /api/health``             → overall status + per-endpoint liveness
- ``GET /api/alerts``             → live alerts (``?status=active|silenced``)
- ``GET /api/metrics/{name}``     → points (``?start=&end=`` epoch seconds)
- ``GET /api/reports/{period}``   → daily / weekly / monthly report
- ``GET /api/dashboard``          → last-hour overview
"""

from __future__ import annotations

import base64
import hmac
from typing import TYPE_CHECKING, Any

from aiohttp import web

from healthwatch.core.types import AlertStatus, ReportPeriod, TimeRange

if TYPE_CHECKING:
    from healthwatch.engine.monitoring import MonitoringEngine

ENGINE_KEY: web.AppKey[MonitoringEngine] = web.AppKey("engine")
USERNAME_KEY: web.AppKey[str | None] = web.AppKey("auth_username")
PASSWORD_KEY: web.AppKey[str | None] = web.AppKey("auth_password")


def _check_basic_auth(request: web.Request, username: str, password: str) -> bool:
    """Validate HTTP Basic Auth credentials."""
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Basic "):
        return False
    try:
        decoded = base64.b64decode(auth_header[6:]).decode("utf-8")
        req_user, req_pass = decoded.split(":", 1)
    except (ValueError, UnicodeDecodeError):
        return False
    user_ok = hmac.compare_digest(req_user, username)
    pass_ok = hmac.compare_digest(req_pass, password)
    return user_ok and pass_ok


@web.middleware
async def _auth_middleware(request: web.Request, handler: Any) -> web.StreamResponse:
    """Require HTTP Basic Auth on all routes when credentials are configured."""
    username = request.app.get(USERNAME_KEY)
    password = request.app.get(PASSWORD_KEY)
    if username and password:
        if not _check_basic_auth(request, username, password):
            return web.json_response(
                {"error": "unauthorized"},
                status=401,
                headers={"WWW-Authenticate": 'Basic realm="healthwatch"'},
            )
    return await handler(request)


def _bad_request(message: str) -> web.Response:
    return web.json_response({"error": message}, status=400)


def _float_param(request: web.Request, name: str) -> float | None:
    raw = request.query.get(name)
    if raw is None or raw == "":
        return None
    return float(raw)


async def _handle_health(request: web.Request) -> web.Response:
    engine = request.app[ENGINE_KEY]
    return web.json_response({
        "status": engine.overall_status().value,
        "endpoints": engine.get_health_status(),
    })


async def _handle_alerts(request: web.Request) -> web.Response:
    engine = request.app[ENGINE_KEY]
    raw = request.query.get("status", AlertStatus.ACTIVE.value)
    try:
        status = AlertStatus(raw)
    except ValueError:
        return _bad_request(f"unknown alert status: {raw}")
    alerts = engine.get_alerts(status)
    return web.json_response({"alerts": [a.model_dump(mode="json") for a in alerts]})


async def _handle_metric(request: web.Request) -> web.Response:
    engine = request.app[ENGINE_KEY]
    name = request.match_info["name"]
    try:
        window = TimeRange(start=_float_param(request, "start"), end=_float_param(request, "end"))
    except ValueError:
        return _bad_request("start and end must be epoch seconds")
    points = engine.get_metric(name, window)
    return web.json_response({
        "name": name,
        "points": [p.model_dump(mode="json") for p in points],
    })


async def _handle_report(request: web.Request) -> web.Response:
    engine = request.app[ENGINE_KEY]
    raw = request.match_info["period"]
    try:
        period = ReportPeriod(raw)
    except ValueError:
        return _bad_request(f"unknown report period: {raw}")
    report = engine.generate_report(period)
    return web.json_response(report.model_dump(mode="json"))


async def _handle_dashboard(request: web.Request) -> web.Response:
    engine = request.app[ENGINE_KEY]
    return web.json_response(engine.dashboard().model_dump(mode="json"))


def create_api_app(
    engine: MonitoringEngine,
    username: str | None = None,
    password: str | None = None,
) -> web.Application:
    """Create the aiohttp web application."""
    app = web.Application(middlewares=[_auth_middleware])
    app[ENGINE_KEY] = engine
    app[USERNAME_KEY] = username
    app[PASSWORD_KEY] = password
    app.router.add_get("/api/health", _handle_health)
    app.router.add_get("/api/alerts", _handle_alerts)
    app.router.add_get("/api/metrics/{name}", _handle_metric)
    app.router.add_get("/api/reports/{period}", _handle_report)
    app.router.add_get("/api/dashboard", _handle_dashboard)
    return app


async def start_api_server(
    engine: MonitoringEngine,
    host: str = "127.0.0.1",
    port: int = 8080,
    username: str | None = None,
    password: str | None = None,
) -> web.AppRunner:
    """Start the API server. Returns the runner for cleanup."""
    app = create_api_app(engine, username=username, password=password)
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, host, port)
    await site.start()
    return runner
