"""ErrorTracker — application error intake feeding metrics and alerts."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from healthwatch.alerting.types import Alert
from healthwatch.core.config import ErrorTrackingConfig
from healthwatch.core.types import Severity
from healthwatch.metrics.store import MetricStore

if TYPE_CHECKING:
    from healthwatch.alerting.manager import AlertManager

logger = structlog.stdlib.get_logger()

ERROR_COUNT_METRIC = "error_count"
NEW_ERROR_RULE_ID = "new_error"


def error_alert_key(error_type: str, url: str) -> str:
    """Alert key for one error signature; repeats refresh the same alert."""
    return f"new_error:{error_type}:{url}"


class ErrorTracker:
    """Records reported errors as ``error_count{error_type,url}`` points.

    With ``notify_new_errors`` set, each report also triggers a ``new_error``
    alert keyed on the error type and URL, so a burst of the same error
    raises one alert.
    """

    def __init__(
        self,
        store: MetricStore,
        alert_manager: AlertManager | None = None,
        config: ErrorTrackingConfig | None = None,
    ) -> None:
        self._store = store
        self._alerts = alert_manager
        self._config = config or ErrorTrackingConfig()

    @property
    def enabled(self) -> bool:
        return self._config.enabled

    async def track(
        self,
        error_type: str,
        url: str,
        message: str = "",
        severity: Severity | None = None,
    ) -> Alert | None:
        """Record one error occurrence. Returns the alert raised, if any."""
        if not self._config.enabled:
            logger.debug("error_tracking_disabled", error_type=error_type)
            return None
        self._store.record(ERROR_COUNT_METRIC, 1.0, {"error_type": error_type, "url": url})
        logger.warning("error_tracked", error_type=error_type, url=url, message=message)

        if self._alerts is None or not self._config.notify_new_errors:
            return None
        return await self._alerts.trigger(
            error_alert_key(error_type, url),
            rule_id=NEW_ERROR_RULE_ID,
            metric=NEW_ERROR_RULE_ID,
            severity=severity or self._config.severity,
            description=f"New error detected: {message or error_type}",
            current_value=1.0,
            threshold=1.0,
            labels={"error_type": error_type, "url": url},
        )
