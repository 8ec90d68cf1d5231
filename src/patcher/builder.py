from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

import yaml

from src.common.errors import NoChangesNeeded, ValidationFault
from src.common.kinds import find_containers, kind_spec, nest_containers
from src.common.models import Recommendation, ResourceCoordinate, ResourceDelta
from src.strategy.policy import Strategy, StrategyRegistry, decide, default_registry

from .placeholders import NAMESPACE_TOKEN, RESOURCE_NAME_TOKEN, resolve_target
from .units import format_cpu, format_memory
from .validation import MAX_CPU_MILLICORES, MAX_MEMORY_BYTES, ensure_valid

logger = logging.getLogger(__name__)

PATCH_TYPE = "strategic-merge-patch"

StrategyRef = Union[str, Strategy]

_LIMITS = {"cpu": (MAX_CPU_MILLICORES, format_cpu), "memory": (MAX_MEMORY_BYTES, format_memory)}


def dump_document(body: Dict[str, Any]) -> str:
    return yaml.safe_dump(body, sort_keys=False, default_flow_style=False, width=120)


@dataclass
class PatchDocument:
    coordinate: ResourceCoordinate
    body: Dict[str, Any]
    serialized: str
    strategy: str
    container_count: int
    recommendation_ids: List[str] = field(default_factory=list)
    is_cumulative: bool = False
    batch_id: Optional[str] = None

    @property
    def api_version(self) -> str:
        return self.body["apiVersion"]

    @property
    def kind(self) -> str:
        return self.body["kind"]

    @property
    def containers(self) -> List[Dict[str, Any]]:
        return find_containers(self.body, self.kind) or []

    def resolved_body(self, coordinate: Optional[ResourceCoordinate] = None) -> Dict[str, Any]:
        target = coordinate or self.coordinate
        return resolve_target(self.body, target.namespace, target.resource_name)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "recommendation_ids": list(self.recommendation_ids),
            **self.coordinate.to_dict(),
            "patch_data": {
                "yaml": self.serialized,
                "type": PATCH_TYPE,
                "containers_updated": self.container_count,
                "strategy": self.strategy,
            },
            "is_cumulative": self.is_cumulative,
            "container_count": self.container_count,
        }
        if self.batch_id is not None:
            data["batch_id"] = self.batch_id
        return data

    @classmethod
    def load(
        cls,
        serialized: str,
        coordinate: ResourceCoordinate,
        *,
        strategy: str = "",
        recommendation_ids: Sequence[str] = (),
        is_cumulative: bool = False,
        batch_id: Optional[str] = None,
    ) -> "PatchDocument":
        """Parse and validate a serialized document produced by :class:`PatchBuilder`."""

        try:
            body = yaml.safe_load(serialized)
        except yaml.YAMLError as exc:
            raise ValidationFault(f"patch YAML is not parseable: {exc}") from exc
        ensure_valid(body)
        if body["kind"] != coordinate.resource_kind.value:
            raise ValidationFault(
                f"patch kind {body['kind']} does not match target kind {coordinate.resource_kind.value}"
            )
        return cls(
            coordinate=coordinate,
            body=body,
            serialized=serialized,
            strategy=strategy,
            container_count=len(find_containers(body, body["kind"]) or []),
            recommendation_ids=list(recommendation_ids),
            is_cumulative=is_cumulative,
            batch_id=batch_id,
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PatchDocument":
        patch_data = data.get("patch_data") or {}
        ids = data.get("recommendation_ids")
        if ids is None and data.get("recommendation_id") is not None:
            ids = [data["recommendation_id"]]
        return cls.load(
            patch_data["yaml"],
            ResourceCoordinate.from_dict(dict(data)),
            strategy=str(patch_data.get("strategy", "")),
            recommendation_ids=[str(item) for item in ids or []],
            is_cumulative=bool(data.get("is_cumulative", False)),
            batch_id=data.get("batch_id"),
        )


@dataclass
class CumulativeBatch:
    batch_id: str
    strategy: str
    documents: List[PatchDocument]
    total_recommendations: int
    skipped: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "batch_id": self.batch_id,
            "strategy": self.strategy,
            "patches": [document.to_dict() for document in self.documents],
            "total_recommendations": self.total_recommendations,
            "skipped": list(self.skipped),
        }


def group_by_resource(recommendations: Sequence[Recommendation]) -> Dict[str, List[Recommendation]]:
    grouped: Dict[str, List[Recommendation]] = {}
    for recommendation in recommendations:
        grouped.setdefault(recommendation.coordinate.resource_key, []).append(recommendation)
    return grouped


class PatchBuilder:
    """Turns container resource deltas into validated partial-update documents."""

    def __init__(
        self,
        registry: Optional[StrategyRegistry] = None,
        custom_rules: Optional[Mapping[str, Any]] = None,
    ) -> None:
        self.registry = registry or default_registry()
        self.custom_rules = dict(custom_rules or {})

    def resolve_strategy(self, strategy: StrategyRef) -> Strategy:
        return self.registry.resolve(strategy, self.custom_rules)

    def container_block(self, delta: ResourceDelta, strategy: Strategy) -> Optional[Dict[str, Any]]:
        fields = [
            ("requests", "cpu", delta.current_cpu_request, delta.recommended_cpu_request),
            ("requests", "memory", delta.current_memory_request, delta.recommended_memory_request),
        ]
        if strategy.preserve_limits:
            fields += [
                ("limits", "cpu", delta.current_cpu_limit, delta.recommended_cpu_limit),
                ("limits", "memory", delta.current_memory_limit, delta.recommended_memory_limit),
            ]

        resources: Dict[str, Dict[str, str]] = {}
        errors: List[str] = []
        for scope, resource_type, current, recommended in fields:
            value = decide(resource_type, current, recommended, strategy)
            if value is None:
                continue
            # Range is checked on the raw integer; formatting rounds to one decimal.
            upper, render = _LIMITS[resource_type]
            if value < 0 or value > upper:
                errors.append(
                    f"container {delta.container_name}: recommended {resource_type} {scope[:-1]} "
                    f"{value} exceeds allowed range 0..{upper}"
                )
                continue
            resources.setdefault(scope, {})[resource_type] = render(value)
        if errors:
            raise ValidationFault("recommendation out of range", errors)
        if not resources:
            return None
        return {"name": delta.container_name, "resources": resources}

    def build(
        self,
        coordinate: ResourceCoordinate,
        deltas: Sequence[ResourceDelta],
        strategy: StrategyRef,
        *,
        recommendation_ids: Sequence[str] = (),
        is_cumulative: bool = False,
        batch_id: Optional[str] = None,
    ) -> PatchDocument:
        """Build one document covering every delta; raises :class:`NoChangesNeeded` if all are no-ops."""

        resolved = self.resolve_strategy(strategy)
        spec = kind_spec(coordinate.resource_kind)

        blocks: Dict[str, Dict[str, Any]] = {}
        for delta in deltas:
            block = self.container_block(delta, resolved)
            if block is not None:
                blocks[delta.container_name] = block
        if not blocks:
            raise NoChangesNeeded(f"No changes necessary for {coordinate.describe()}")

        body: Dict[str, Any] = {
            "apiVersion": spec.api_version,
            "kind": spec.kind.value,
            "metadata": {"name": RESOURCE_NAME_TOKEN, "namespace": NAMESPACE_TOKEN},
            "spec": nest_containers(spec.kind, list(blocks.values())),
        }
        ensure_valid(body)
        return PatchDocument(
            coordinate=coordinate,
            body=body,
            serialized=dump_document(body),
            strategy=resolved.name,
            container_count=len(blocks),
            recommendation_ids=list(recommendation_ids),
            is_cumulative=is_cumulative,
            batch_id=batch_id,
        )

    def build_single(self, recommendation: Recommendation, strategy: StrategyRef = "conservative") -> PatchDocument:
        logger.info("Generating patch for %s", recommendation.coordinate.describe())
        return self.build(
            recommendation.coordinate,
            [recommendation.delta],
            strategy,
            recommendation_ids=[recommendation.id] if recommendation.id else [],
        )

    def build_cumulative(
        self,
        recommendations: Sequence[Recommendation],
        strategy: StrategyRef = "conservative",
        *,
        batch_id: Optional[str] = None,
    ) -> CumulativeBatch:
        resolved = self.resolve_strategy(strategy)
        batch_id = batch_id or str(uuid.uuid4())
        logger.info("Generating cumulative patches for %d recommendation(s)", len(recommendations))

        documents: List[PatchDocument] = []
        skipped: List[str] = []
        for resource_key, group in group_by_resource(recommendations).items():
            first = group[0].coordinate
            coordinate = ResourceCoordinate(
                cluster_id=first.cluster_id,
                namespace=first.namespace,
                resource_name=first.resource_name,
                resource_kind=first.resource_kind,
            )
            try:
                documents.append(
                    self.build(
                        coordinate,
                        [recommendation.delta for recommendation in group],
                        resolved,
                        recommendation_ids=[rec.id for rec in group if rec.id],
                        is_cumulative=True,
                        batch_id=batch_id,
                    )
                )
            except NoChangesNeeded:
                logger.info("No changes necessary for %s; skipping", resource_key)
                skipped.append(resource_key)

        logger.info("Generated %d cumulative patch(es) for batch %s", len(documents), batch_id)
        return CumulativeBatch(
            batch_id=batch_id,
            strategy=resolved.name,
            documents=documents,
            total_recommendations=len(recommendations),
            skipped=skipped,
        )


__all__ = ["PatchBuilder", "PatchDocument", "CumulativeBatch", "group_by_resource", "dump_document", "PATCH_TYPE"]
