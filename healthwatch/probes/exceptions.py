"""Exception hierarchy for probes and collectors."""

from __future__ import annotations

from healthwatch.core.exceptions import HealthwatchError


class ProbeError(HealthwatchError):
    """A probe attempt failed (transient — retried, never fatal)."""


class ProbeTimeoutError(ProbeError):
    """A probe attempt did not complete within its timeout."""


class CollectorError(HealthwatchError):
    """A metric collector failed to produce samples."""
