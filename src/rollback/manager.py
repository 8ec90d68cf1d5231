from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence

import jsonpatch

from src.applier.applier import BATCH_PAUSE_SECONDS
from src.cluster.client import ClusterRegistry
from src.common.errors import CorruptBackupFault, EngineError, ValidationFault
from src.common.models import Backup, BatchResult, ResourceCoordinate, RollbackResult, utcnow
from src.snapshot.snapshotter import clean_resource, verify_integrity

logger = logging.getLogger(__name__)


@dataclass
class RollbackItem:
    backup: Backup
    item_id: Optional[str] = None
    coordinate: Optional[ResourceCoordinate] = None

    @property
    def target(self) -> ResourceCoordinate:
        return self.coordinate or self.backup.coordinate


class RollbackManager:
    """Restores resources from verified backups with a full replace."""

    def __init__(
        self,
        clusters: ClusterRegistry,
        *,
        pause_seconds: float = BATCH_PAUSE_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.clusters = clusters
        self.pause_seconds = pause_seconds
        self._sleep = sleep

    def _check_backup(self, coordinate: ResourceCoordinate, backup: Backup) -> None:
        if not verify_integrity(backup):
            raise CorruptBackupFault(f"Backup for {coordinate.describe()} is corrupt: checksum mismatch")
        if backup.coordinate.resource_key != coordinate.resource_key:
            raise ValidationFault(
                f"Backup of {backup.coordinate.resource_key} cannot restore {coordinate.resource_key}"
            )

    def preview(self, coordinate: ResourceCoordinate, backup: Backup) -> List[Dict[str, Any]]:
        """JSON Patch operations that restoring ``backup`` would apply to the live resource."""

        self._check_backup(coordinate, backup)
        cluster = self.clusters.get(coordinate.cluster_id)
        live = cluster.read(coordinate.resource_kind, coordinate.namespace, coordinate.resource_name)
        return jsonpatch.make_patch(clean_resource(live), backup.body).patch

    def rollback(
        self,
        coordinate: ResourceCoordinate,
        backup: Backup,
        *,
        item_id: Optional[str] = None,
        dry_run: bool = False,
    ) -> RollbackResult:
        """Replace the live resource with the backup body.

        Raises :class:`CorruptBackupFault` before touching the cluster when the
        backup fails its integrity check. Cluster faults are reported in the
        returned result.
        """

        logger.info("Starting rollback of %s%s", coordinate.describe(), f" (patch {item_id})" if item_id else "")
        self._check_backup(coordinate, backup)
        try:
            reverted = self.preview(coordinate, backup)
            cluster = self.clusters.get(coordinate.cluster_id)
            response = cluster.replace(
                coordinate.resource_kind,
                coordinate.namespace,
                coordinate.resource_name,
                backup.body,
                dry_run=dry_run,
            )
        except EngineError as exc:
            logger.error("Rollback of %s failed: %s", coordinate.describe(), exc)
            return RollbackResult(
                success=False,
                rolled_back_at=utcnow(),
                error_message=str(exc),
                item_id=item_id,
                dry_run=dry_run,
            )
        logger.info("Rollback of %s completed (%d operation(s) reverted)", coordinate.describe(), len(reverted))
        return RollbackResult(
            success=True,
            rolled_back_at=utcnow(),
            k8s_response=response,
            item_id=item_id,
            reverted=reverted,
            dry_run=dry_run,
        )

    def rollback_batch(self, items: Sequence[RollbackItem], dry_run: bool = False) -> BatchResult:
        """Roll back ``items`` in reverse of their application order."""

        logger.info("Starting batch rollback of %d patch(es)", len(items))
        batch = BatchResult(dry_run=dry_run)
        for index, item in enumerate(reversed(items)):
            if index > 0 and not dry_run:
                self._sleep(self.pause_seconds)
            try:
                result = self.rollback(item.target, item.backup, item_id=item.item_id, dry_run=dry_run)
            except (CorruptBackupFault, ValidationFault) as exc:
                logger.error("Rollback of %s refused: %s", item.target.describe(), exc)
                result = RollbackResult(
                    success=False,
                    rolled_back_at=utcnow(),
                    error_message=str(exc),
                    item_id=item.item_id,
                    dry_run=dry_run,
                )
            batch.results.append(result)
        logger.info("Batch rollback completed: %d succeeded, %d failed", batch.successful, batch.failed)
        return batch


__all__ = ["RollbackManager", "RollbackItem"]
