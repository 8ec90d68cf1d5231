"""Strategy policies for resource recommendations."""

from .policy import Strategy, StrategyKind, StrategyRegistry, Thresholds, decide, default_registry

__all__ = ["Strategy", "StrategyKind", "StrategyRegistry", "Thresholds", "decide", "default_registry"]
