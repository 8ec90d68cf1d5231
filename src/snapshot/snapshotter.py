from __future__ import annotations

import copy
import hashlib
import json
import logging
from typing import Any, Dict, Optional

from src.cluster.client import ClusterClient
from src.common.models import Backup, ResourceCoordinate, utcnow

logger = logging.getLogger(__name__)

# Server-managed metadata that must not be replayed onto the cluster.
EPHEMERAL_METADATA_FIELDS = (
    "uid",
    "resourceVersion",
    "generation",
    "creationTimestamp",
    "managedFields",
    "selfLink",
)


def clean_resource(resource: Dict[str, Any]) -> Dict[str, Any]:
    cleaned = copy.deepcopy(resource)
    metadata = cleaned.get("metadata")
    if isinstance(metadata, dict):
        for key in EPHEMERAL_METADATA_FIELDS:
            metadata.pop(key, None)
    cleaned.pop("status", None)
    return cleaned


def canonical_json(data: Any) -> str:
    return json.dumps(data, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)


def compute_checksum(data: Any) -> str:
    return hashlib.sha256(canonical_json(data).encode("utf-8")).hexdigest()


def verify_integrity(backup: Backup) -> bool:
    return compute_checksum(backup.body) == backup.checksum


class Snapshotter:
    def __init__(self, cluster: ClusterClient) -> None:
        self.cluster = cluster

    def snapshot(self, coordinate: ResourceCoordinate, reason: Optional[str] = None) -> Backup:
        """Capture the cleaned live body of ``coordinate``; raises ``NotFoundFault`` if absent."""

        logger.info("Creating backup for %s", coordinate.describe())
        resource = self.cluster.read(coordinate.resource_kind, coordinate.namespace, coordinate.resource_name)
        body = clean_resource(resource)
        checksum = compute_checksum(body)
        logger.info("Backup for %s created with checksum %s", coordinate.describe(), checksum)
        return Backup(
            coordinate=coordinate,
            body=body,
            checksum=checksum,
            created_at=utcnow(),
            reason=reason,
            auto_created=reason is not None,
        )

    def create_rollback_point(self, coordinate: ResourceCoordinate, reason: str = "Auto backup") -> Backup:
        return self.snapshot(coordinate, reason=reason)


__all__ = [
    "Snapshotter",
    "clean_resource",
    "canonical_json",
    "compute_checksum",
    "verify_integrity",
    "EPHEMERAL_METADATA_FIELDS",
]
