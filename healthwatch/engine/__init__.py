"""Engine instance wiring the monitoring pipeline."""

from healthwatch.engine.monitoring import MonitoringEngine

__all__ = ["MonitoringEngine"]
