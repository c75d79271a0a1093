"""Silences — time-boxed notification suppression for matching alerts."""

from __future__ import annotations

from fnmatch import fnmatchcase

from pydantic import BaseModel

from healthwatch.alerting.types import Alert

_GLOB_CHARS = frozenset("*?[")


class Silence(BaseModel):
    """An active silence window."""

    id: str
    pattern: str
    reason: str = ""
    created_at: float
    expires_at: float

    def active_at(self, ts: float) -> bool:
        return self.created_at <= ts < self.expires_at

    def matches(self, alert: Alert) -> bool:
        return matches_pattern(self.pattern, alert)


def matches_pattern(pattern: str, alert: Alert) -> bool:
    """Case-insensitive match of *pattern* against an alert's identifying text.

    Patterns containing glob characters are matched with fnmatch against
    each candidate; anything else is a substring match.  Candidates are the
    alert key, rule id, metric, description and label values.
    """
    needle = pattern.lower()
    candidates = [
        alert.key,
        alert.rule_id,
        alert.metric,
        alert.description,
        *alert.labels.values(),
    ]
    if _GLOB_CHARS.intersection(needle):
        return any(fnmatchcase(c.lower(), needle) for c in candidates)
    return any(needle in c.lower() for c in candidates)
