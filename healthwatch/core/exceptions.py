"""Base exception hierarchy shared by every healthwatch subsystem."""

from __future__ import annotations


class HealthwatchError(Exception):
    """Base exception for all healthwatch errors."""


class InvalidConfigError(HealthwatchError):
    """Configuration failed validation at load time (fatal)."""
