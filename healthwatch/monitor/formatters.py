"""Pure functions that convert alerts into NotificationMessage objects."""

from __future__ import annotations

from datetime import datetime, timezone

from healthwatch.alerting.types import Alert
from healthwatch.monitor.types import NotificationMessage


def iso_utc(ts: float) -> str:
    """Epoch seconds as ISO-8601 UTC, second precision."""
    return datetime.fromtimestamp(ts, tz=timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def format_alert(alert: Alert, assignees: list[str] | None = None) -> NotificationMessage:
    """Convert an Alert to a NotificationMessage.

    The output depends only on the alert and *assignees*, so the same alert
    always renders to the same text.
    """
    marker = alert.status.value.upper()
    title = f"{marker} [{alert.severity.value.upper()}] {alert.description or alert.rule_id}"

    fields: dict[str, str] = {
        "metric": alert.metric,
        "current_value": f"{alert.current_value:g}",
        "threshold": f"{alert.threshold:g}",
        "started": iso_utc(alert.start_time),
    }
    if alert.end_time is not None:
        fields["resolved"] = iso_utc(alert.end_time)
    for k, v in sorted(alert.labels.items()):
        fields.setdefault(k, v)

    return NotificationMessage(
        alert_id=alert.id,
        key=alert.key,
        status=alert.status,
        severity=alert.severity,
        title=title,
        body=alert.description,
        fields=fields,
        assignees=list(assignees or []),
        timestamp=alert.end_time if alert.end_time is not None else alert.start_time,
        raw=alert.model_dump(mode="json"),
    )


def render_text(msg: NotificationMessage) -> str:
    """Plain-text rendering shared by the text-only transports."""
    lines = [msg.title]
    lines.append(f"Metric: {msg.fields.get('metric', '')}")
    lines.append(f"Current: {msg.fields.get('current_value', '')}")
    lines.append(f"Threshold: {msg.fields.get('threshold', '')}")
    lines.append(f"Started: {msg.fields.get('started', '')}")
    if "resolved" in msg.fields:
        lines.append(f"Resolved: {msg.fields['resolved']}")
    if msg.assignees:
        lines.append(f"Assignees: {', '.join(msg.assignees)}")
    return "\n".join(lines)
