"""Ingestion of KRR scan output into engine recommendations."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Literal, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, NonNegativeInt, ValidationError

from src.common.errors import ValidationFault
from src.common.models import Recommendation

logger = logging.getLogger(__name__)

_SCAN_STATES = {"success": "completed", "partial": "completed", "failed": "failed"}


class KrrResult(BaseModel):
    model_config = ConfigDict(extra="allow")

    cluster_id: str
    namespace: str
    name: str = Field(..., description="Workload name")
    kind: Literal["Deployment", "StatefulSet", "DaemonSet", "Job", "CronJob"]
    container: str
    priority: Literal["LOW", "MEDIUM", "HIGH", "CRITICAL"]

    current_cpu_request: Optional[NonNegativeInt] = None
    recommended_cpu_request: Optional[NonNegativeInt] = None
    current_cpu_limit: Optional[NonNegativeInt] = None
    recommended_cpu_limit: Optional[NonNegativeInt] = None

    current_memory_request: Optional[NonNegativeInt] = None
    recommended_memory_request: Optional[NonNegativeInt] = None
    current_memory_limit: Optional[NonNegativeInt] = None
    recommended_memory_limit: Optional[NonNegativeInt] = None

    pods_count: int = Field(default=1, ge=1)
    labels: Dict[str, str] = Field(default_factory=dict)
    annotations: Dict[str, str] = Field(default_factory=dict)
    additional_data: Dict[str, Any] = Field(default_factory=dict)


class KrrScanDocument(BaseModel):
    model_config = ConfigDict(extra="allow")

    cluster_id: str
    scan_id: str
    scan_date: datetime
    scan_state: Literal["success", "failed", "partial"]
    results: List[KrrResult]
    prometheus_url: Optional[str] = None
    strategy: str = "simple"
    duration_seconds: Optional[float] = Field(default=None, ge=0)
    error_message: Optional[str] = None


@dataclass
class KrrScan:
    scan: Dict[str, Any]
    recommendations: List[Recommendation]
    summary: Dict[str, Any] = field(default_factory=dict)


def _format_errors(exc: ValidationError) -> List[str]:
    messages: List[str] = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()))
        messages.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    return messages


def validate_krr_output(raw: Union[str, bytes, Mapping[str, Any]]) -> KrrScanDocument:
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ValidationFault("KRR output is not valid JSON", [str(exc)]) from exc
    try:
        return KrrScanDocument.model_validate(raw)
    except ValidationError as exc:
        raise ValidationFault("Invalid KRR output", _format_errors(exc)) from exc


def _to_recommendation(scan_id: str, index: int, result: KrrResult) -> Recommendation:
    return Recommendation.from_dict(
        {
            "id": f"{scan_id}:{index}",
            "cluster_id": result.cluster_id,
            "namespace": result.namespace,
            "resource_name": result.name,
            "resource_type": result.kind,
            "container_name": result.container,
            "priority": result.priority,
            "pods_count": result.pods_count,
            "current_cpu_request": result.current_cpu_request,
            "recommended_cpu_request": result.recommended_cpu_request,
            "current_cpu_limit": result.current_cpu_limit,
            "recommended_cpu_limit": result.recommended_cpu_limit,
            "current_memory_request": result.current_memory_request,
            "recommended_memory_request": result.recommended_memory_request,
            "current_memory_limit": result.current_memory_limit,
            "recommended_memory_limit": result.recommended_memory_limit,
        }
    )


def summarize(recommendations: List[Recommendation]) -> Dict[str, Any]:
    summary: Dict[str, Any] = {
        "total_recommendations": len(recommendations),
        "by_priority": {},
        "by_namespace": {},
        "by_resource_type": {},
        "potential_savings": {"cpu": 0, "memory": 0, "total_containers": 0},
    }
    for rec in recommendations:
        for bucket, key in (
            ("by_priority", rec.priority),
            ("by_namespace", rec.coordinate.namespace),
            ("by_resource_type", rec.coordinate.resource_kind.value),
        ):
            summary[bucket][key] = summary[bucket].get(key, 0) + 1
        delta = rec.delta
        savings = summary["potential_savings"]
        if delta.current_cpu_request and delta.recommended_cpu_request:
            savings["cpu"] += max(0, delta.current_cpu_request - delta.recommended_cpu_request)
        if delta.current_memory_request and delta.recommended_memory_request:
            savings["memory"] += max(0, delta.current_memory_request - delta.recommended_memory_request)
        savings["total_containers"] += rec.pods_count
    return summary


def parse_krr_output(raw: Union[str, bytes, Mapping[str, Any]], metadata: Optional[Mapping[str, Any]] = None) -> KrrScan:
    logger.info("Parsing KRR output")
    document = validate_krr_output(raw)
    recommendations = [
        _to_recommendation(document.scan_id, index, result) for index, result in enumerate(document.results)
    ]
    scan = {
        "cluster_id": document.cluster_id,
        "scan_id": document.scan_id,
        "scan_date": document.scan_date.isoformat(),
        "scan_status": _SCAN_STATES[document.scan_state],
        "prometheus_url": document.prometheus_url or (metadata or {}).get("prometheus_url"),
        "metadata": {
            "strategy": document.strategy,
            "duration_seconds": document.duration_seconds,
            "total_results": len(document.results),
            **dict(metadata or {}),
        },
    }
    logger.info("Parsed %d recommendation(s) from scan %s", len(recommendations), document.scan_id)
    return KrrScan(scan=scan, recommendations=recommendations, summary=summarize(recommendations))


__all__ = ["KrrResult", "KrrScanDocument", "KrrScan", "parse_krr_output", "validate_krr_output", "summarize"]
