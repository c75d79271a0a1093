"""Tests for healthwatch/alerting/silences.py — pattern matching."""

from __future__ import annotations

import pytest

from healthwatch.alerting.silences import Silence, matches_pattern
from healthwatch.alerting.types import Alert
from healthwatch.core.types import Severity


def _alert(**kw: object) -> Alert:
    defaults: dict[str, object] = {
        "id": "a1",
        "key": "health_check_API Health",
        "rule_id": "health_check_failed",
        "metric": "health_check_failed",
        "current_value": 0.0,
        "threshold": 1.0,
        "severity": Severity.CRITICAL,
        "start_time": 0.0,
        "description": "Health check failed for API Health: https://example.com/api/health",
        "labels": {"endpoint": "API Health", "env": "maintenance"},
    }
    defaults.update(kw)
    return Alert(**defaults)  # type: ignore[arg-type]


class TestMatchesPattern:
    @pytest.mark.parametrize(
        "pattern",
        ["api health", "HEALTH_CHECK", "example.com", "maintenance", "health_check_*", "*API*"],
    )
    def test_matches(self, pattern: str) -> None:
        assert matches_pattern(pattern, _alert())

    @pytest.mark.parametrize("pattern", ["payment", "api_*", "?health"])
    def test_no_match(self, pattern: str) -> None:
        assert not matches_pattern(pattern, _alert())


class TestSilence:
    def test_active_window_is_half_open(self) -> None:
        silence = Silence(id="s", pattern="x", created_at=100, expires_at=200)
        assert not silence.active_at(99)
        assert silence.active_at(100)
        assert silence.active_at(199.9)
        assert not silence.active_at(200)

    def test_matches_delegates_to_pattern(self) -> None:
        silence = Silence(id="s", pattern="api health", created_at=0, expires_at=1)
        assert silence.matches(_alert())
