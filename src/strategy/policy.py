"""Strategy policies deciding which recommended resource values are applied.

Strategies are immutable values; the decision logic lives in :func:`decide`
and dispatches on :class:`StrategyKind`. A :class:`StrategyRegistry` is built
explicitly and handed to the components that need it.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from src.common.errors import ValidationFault

RESOURCE_TYPES = ("cpu", "memory")


class StrategyKind(str, Enum):
    CONSERVATIVE = "conservative"
    BALANCED = "balanced"
    AGGRESSIVE = "aggressive"
    CUSTOM = "custom"


@dataclass(frozen=True)
class Thresholds:
    min_reduction_percentage: float
    max_increase_percentage: float


@dataclass(frozen=True)
class Strategy:
    kind: StrategyKind
    description: str
    thresholds: Thresholds
    preserve_limits: bool
    # Per resource type ("cpu"/"memory") overrides, only used by the custom strategy.
    overrides: Tuple[Tuple[str, Thresholds], ...] = ()

    @property
    def name(self) -> str:
        return self.kind.value

    def thresholds_for(self, resource_type: str) -> Thresholds:
        for key, value in self.overrides:
            if key == resource_type:
                return value
        return self.thresholds

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "preserveLimits": self.preserve_limits,
            "minReductionPercentage": self.thresholds.min_reduction_percentage,
            "maxIncreasePercentage": self.thresholds.max_increase_percentage,
        }


def reduction_percentage(current: Optional[int], recommended: Optional[int]) -> Optional[float]:
    if not current or recommended is None:
        return None
    return (current - recommended) / current * 100


def decide(
    resource_type: str,
    current: Optional[int],
    recommended: Optional[int],
    strategy: Strategy,
) -> Optional[int]:
    """Return the value to set for one field, or ``None`` for "no change"."""

    if resource_type not in RESOURCE_TYPES:
        raise ValidationFault(f"Unknown resource type: {resource_type!r}")
    if strategy.kind is StrategyKind.AGGRESSIVE:
        return recommended or None
    if not current or not recommended:
        return None

    thresholds = strategy.thresholds_for(resource_type)
    min_reduction = thresholds.min_reduction_percentage
    if strategy.kind is StrategyKind.BALANCED and resource_type == "memory":
        min_reduction = min_reduction * 0.5

    reduction = reduction_percentage(current, recommended)
    if reduction >= min_reduction:
        return recommended
    if reduction < 0 and abs(reduction) <= thresholds.max_increase_percentage:
        return recommended
    return None


def _threshold_value(rules: Mapping[str, Any], camel: str, snake: str) -> Optional[float]:
    value = rules.get(camel, rules.get(snake))
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ValidationFault(f"{camel} must be numeric, got {value!r}") from exc


def _custom_overrides(base: Thresholds, custom_rules: Mapping[str, Any]) -> Tuple[Tuple[str, Thresholds], ...]:
    overrides: List[Tuple[str, Thresholds]] = []
    for resource_type in RESOURCE_TYPES:
        rules = custom_rules.get(resource_type)
        if rules is None:
            continue
        if not isinstance(rules, Mapping):
            raise ValidationFault(f"custom rules for {resource_type} must be a mapping")
        min_reduction = _threshold_value(rules, "minReductionPercentage", "min_reduction_percentage")
        max_increase = _threshold_value(rules, "maxIncreasePercentage", "max_increase_percentage")
        overrides.append(
            (
                resource_type,
                Thresholds(
                    min_reduction_percentage=base.min_reduction_percentage if min_reduction is None else min_reduction,
                    max_increase_percentage=base.max_increase_percentage if max_increase is None else max_increase,
                ),
            )
        )
    unknown = sorted(set(custom_rules) - set(RESOURCE_TYPES))
    if unknown:
        raise ValidationFault(f"Unknown custom rule resource type(s): {', '.join(unknown)}")
    return tuple(overrides)


class StrategyRegistry:
    def __init__(self, strategies: Iterable[Strategy]) -> None:
        self._strategies: Dict[str, Strategy] = {strategy.name: strategy for strategy in strategies}

    def names(self) -> List[str]:
        return list(self._strategies)

    def describe(self) -> List[Dict[str, Any]]:
        return [strategy.to_dict() for strategy in self._strategies.values()]

    def resolve(self, name: Any, custom_rules: Optional[Mapping[str, Any]] = None) -> Strategy:
        if isinstance(name, Strategy):
            return name
        key = (name.value if isinstance(name, StrategyKind) else str(name or "")).strip().lower()
        strategy = self._strategies.get(key)
        if strategy is None:
            raise ValidationFault(
                f"Invalid strategy: {name}. Available: {', '.join(self._strategies)}"
            )
        if strategy.kind is StrategyKind.CUSTOM and custom_rules:
            strategy = replace(strategy, overrides=_custom_overrides(strategy.thresholds, custom_rules))
        return strategy


BUILTIN_STRATEGIES = (
    Strategy(
        kind=StrategyKind.CONSERVATIVE,
        description="Apply only significant reductions (>20%) to limit risk",
        thresholds=Thresholds(20, 10),
        preserve_limits=True,
    ),
    Strategy(
        kind=StrategyKind.BALANCED,
        description="Balance savings against stability",
        thresholds=Thresholds(10, 25),
        preserve_limits=True,
    ),
    Strategy(
        kind=StrategyKind.AGGRESSIVE,
        description="Apply every recommendation to maximise savings",
        thresholds=Thresholds(0, 50),
        preserve_limits=False,
    ),
    Strategy(
        kind=StrategyKind.CUSTOM,
        description="Caller-tuned thresholds per resource type",
        thresholds=Thresholds(15, 20),
        preserve_limits=True,
    ),
)


def default_registry() -> StrategyRegistry:
    return StrategyRegistry(BUILTIN_STRATEGIES)


__all__ = [
    "StrategyKind",
    "Thresholds",
    "Strategy",
    "StrategyRegistry",
    "BUILTIN_STRATEGIES",
    "decide",
    "default_registry",
    "reduction_percentage",
]
