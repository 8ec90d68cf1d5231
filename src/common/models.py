from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .kinds import ResourceKind


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ResourceCoordinate:
    cluster_id: str
    namespace: str
    resource_name: str
    resource_kind: ResourceKind
    container_name: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "resource_kind", ResourceKind.parse(self.resource_kind))

    @property
    def resource_key(self) -> str:
        return f"{self.cluster_id}/{self.namespace}/{self.resource_name}/{self.resource_kind.value}"

    def describe(self) -> str:
        return f"{self.resource_kind.value}/{self.namespace}/{self.resource_name}"

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "cluster_id": self.cluster_id,
            "namespace": self.namespace,
            "resource_name": self.resource_name,
            "resource_type": self.resource_kind.value,
        }
        if self.container_name is not None:
            data["container_name"] = self.container_name
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ResourceCoordinate":
        return cls(
            cluster_id=str(data.get("cluster_id") or "default"),
            namespace=str(data["namespace"]),
            resource_name=str(data["resource_name"]),
            resource_kind=data.get("resource_type") or data.get("resource_kind"),
            container_name=data.get("container_name"),
        )


@dataclass(frozen=True)
class ResourceDelta:
    """Current and recommended values for one container.

    CPU values are millicores, memory values are bytes. A missing recommended
    value means no change is proposed for that field.
    """

    container_name: str
    current_cpu_request: Optional[int] = None
    recommended_cpu_request: Optional[int] = None
    current_cpu_limit: Optional[int] = None
    recommended_cpu_limit: Optional[int] = None
    current_memory_request: Optional[int] = None
    recommended_memory_request: Optional[int] = None
    current_memory_limit: Optional[int] = None
    recommended_memory_limit: Optional[int] = None


@dataclass(frozen=True)
class Recommendation:
    id: str
    coordinate: ResourceCoordinate
    delta: ResourceDelta
    priority: Optional[str] = None
    pods_count: int = 1

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Recommendation":
        container = str(data["container_name"])
        coordinate = ResourceCoordinate(
            cluster_id=str(data.get("cluster_id") or "default"),
            namespace=str(data["namespace"]),
            resource_name=str(data["resource_name"]),
            resource_kind=data["resource_type"],
            container_name=container,
        )
        delta = ResourceDelta(
            container_name=container,
            current_cpu_request=data.get("current_cpu_request"),
            recommended_cpu_request=data.get("recommended_cpu_request"),
            current_cpu_limit=data.get("current_cpu_limit"),
            recommended_cpu_limit=data.get("recommended_cpu_limit"),
            current_memory_request=data.get("current_memory_request"),
            recommended_memory_request=data.get("recommended_memory_request"),
            current_memory_limit=data.get("current_memory_limit"),
            recommended_memory_limit=data.get("recommended_memory_limit"),
        )
        return cls(
            id=str(data.get("id", "")),
            coordinate=coordinate,
            delta=delta,
            priority=data.get("priority"),
            pods_count=int(data.get("pods_count") or 1),
        )

    def to_dict(self) -> Dict[str, Any]:
        data = {"id": self.id, **self.coordinate.to_dict()}
        data.update(
            {
                "current_cpu_request": self.delta.current_cpu_request,
                "recommended_cpu_request": self.delta.recommended_cpu_request,
                "current_cpu_limit": self.delta.current_cpu_limit,
                "recommended_cpu_limit": self.delta.recommended_cpu_limit,
                "current_memory_request": self.delta.current_memory_request,
                "recommended_memory_request": self.delta.recommended_memory_request,
                "current_memory_limit": self.delta.current_memory_limit,
                "recommended_memory_limit": self.delta.recommended_memory_limit,
                "priority": self.priority,
                "pods_count": self.pods_count,
            }
        )
        return data


@dataclass
class Backup:
    coordinate: ResourceCoordinate
    body: Dict[str, Any]
    checksum: str
    created_at: datetime = field(default_factory=utcnow)
    reason: Optional[str] = None
    auto_created: bool = False

    def to_dict(self) -> Dict[str, Any]:
        data = {
            **self.coordinate.to_dict(),
            "backup_data": self.body,
            "checksum": self.checksum,
            "created_at": self.created_at.isoformat(),
        }
        if self.reason is not None:
            data["rollback_reason"] = self.reason
            data["auto_created"] = self.auto_created
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Backup":
        created = data.get("created_at")
        return cls(
            coordinate=ResourceCoordinate.from_dict(data),
            body=data["backup_data"],
            checksum=str(data["checksum"]),
            created_at=datetime.fromisoformat(created) if isinstance(created, str) else utcnow(),
            reason=data.get("rollback_reason"),
            auto_created=bool(data.get("auto_created", False)),
        )


@dataclass
class ApplyResult:
    success: bool
    applied_at: datetime
    dry_run: bool
    error_message: Optional[str] = None
    k8s_response: Optional[Dict[str, Any]] = None
    item_id: Optional[str] = None
    backup: Optional[Backup] = None
    readiness: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "success": self.success,
            "applied_at": self.applied_at.isoformat(),
            "dry_run": self.dry_run,
        }
        if self.item_id is not None:
            data["patch_id"] = self.item_id
        if self.error_message is not None:
            data["error_message"] = self.error_message
        if self.k8s_response is not None:
            data["k8s_response"] = self.k8s_response
        if self.backup is not None:
            data["backup"] = self.backup.to_dict()
        if self.readiness is not None:
            data["readiness"] = self.readiness
        return data


@dataclass
class RollbackResult:
    success: bool
    rolled_back_at: datetime
    error_message: Optional[str] = None
    k8s_response: Optional[Dict[str, Any]] = None
    item_id: Optional[str] = None
    reverted: List[Dict[str, Any]] = field(default_factory=list)
    dry_run: bool = False

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "success": self.success,
            "rolled_back_at": self.rolled_back_at.isoformat(),
            "dry_run": self.dry_run,
            "reverted": self.reverted,
        }
        if self.item_id is not None:
            data["patch_id"] = self.item_id
        if self.error_message is not None:
            data["error_message"] = self.error_message
        if self.k8s_response is not None:
            data["k8s_response"] = self.k8s_response
        return data


@dataclass
class BatchResult:
    results: List[Any] = field(default_factory=list)
    dry_run: bool = False
    cancelled: bool = False

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def successful(self) -> int:
        return sum(1 for result in self.results if result.success)

    @property
    def failed(self) -> int:
        return self.total - self.successful

    @property
    def batch_success(self) -> bool:
        return self.failed == 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "batch_success": self.batch_success,
            "total": self.total,
            "successful": self.successful,
            "failed": self.failed,
            "dry_run": self.dry_run,
            "cancelled": self.cancelled,
            "results": [result.to_dict() for result in self.results],
        }


__all__ = [
    "ResourceCoordinate",
    "ResourceDelta",
    "Recommendation",
    "Backup",
    "ApplyResult",
    "RollbackResult",
    "BatchResult",
    "utcnow",
]
