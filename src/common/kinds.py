"""Supported workload kinds and the per-kind layout of their pod templates."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from .errors import UnsupportedKindFault


class ResourceKind(str, Enum):
    DEPLOYMENT = "Deployment"
    STATEFULSET = "StatefulSet"
    DAEMONSET = "DaemonSet"
    JOB = "Job"
    CRONJOB = "CronJob"

    @classmethod
    def parse(cls, value: Any) -> "ResourceKind":
        if isinstance(value, cls):
            return value
        for kind in cls:
            if kind.value == value:
                return kind
        supported = ", ".join(kind.value for kind in cls)
        raise UnsupportedKindFault(f"Unsupported resource kind: {value!r} (supported: {supported})")


@dataclass(frozen=True)
class KindSpec:
    kind: ResourceKind
    api_version: str
    # Name used by the kubernetes client method family, e.g. patch_namespaced_<api_name>.
    api_name: str
    container_path: Tuple[str, ...]


_TEMPLATE_PATH = ("spec", "template", "spec", "containers")
_CRON_TEMPLATE_PATH = ("spec", "jobTemplate", "spec", "template", "spec", "containers")

KIND_SPECS: Dict[ResourceKind, KindSpec] = {
    ResourceKind.DEPLOYMENT: KindSpec(ResourceKind.DEPLOYMENT, "apps/v1", "deployment", _TEMPLATE_PATH),
    ResourceKind.STATEFULSET: KindSpec(ResourceKind.STATEFULSET, "apps/v1", "stateful_set", _TEMPLATE_PATH),
    ResourceKind.DAEMONSET: KindSpec(ResourceKind.DAEMONSET, "apps/v1", "daemon_set", _TEMPLATE_PATH),
    ResourceKind.JOB: KindSpec(ResourceKind.JOB, "batch/v1", "job", _TEMPLATE_PATH),
    ResourceKind.CRONJOB: KindSpec(ResourceKind.CRONJOB, "batch/v1", "cron_job", _CRON_TEMPLATE_PATH),
}


def kind_spec(kind: Any) -> KindSpec:
    return KIND_SPECS[ResourceKind.parse(kind)]


def nest_containers(kind: Any, containers: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Return the ``spec`` subtree placing ``containers`` at the kind's template path."""

    path = kind_spec(kind).container_path
    node: Any = containers
    for key in reversed(path[1:]):
        node = {key: node}
    return node


def find_containers(body: Dict[str, Any], kind: Any) -> Optional[List[Any]]:
    node: Any = body
    for key in kind_spec(kind).container_path:
        if not isinstance(node, dict) or key not in node:
            return None
        node = node[key]
    return node if isinstance(node, list) else None


__all__ = ["ResourceKind", "KindSpec", "KIND_SPECS", "kind_spec", "nest_containers", "find_containers"]
