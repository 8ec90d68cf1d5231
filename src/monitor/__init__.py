"""Rollout readiness polling."""

from .readiness import ReadinessMonitor, ReadinessStatus, ReadySignal, evaluate

__all__ = ["ReadinessMonitor", "ReadinessStatus", "ReadySignal", "evaluate"]
