from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from src.cluster.client import ClusterClient, ClusterRegistry
from src.common.errors import EngineError, ValidationFault
from src.common.models import ApplyResult, BatchResult, ResourceCoordinate, utcnow
from src.patcher.builder import PatchDocument
from src.patcher.validation import ensure_valid

logger = logging.getLogger(__name__)

BATCH_PAUSE_SECONDS = 2.0


@dataclass
class ApplyItem:
    coordinate: ResourceCoordinate
    document: PatchDocument
    item_id: Optional[str] = None


class PatchApplier:
    """Submits patch documents to the cluster, one at a time."""

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

    def apply(
        self,
        coordinate: ResourceCoordinate,
        document: PatchDocument,
        dry_run: bool = False,
        item_id: Optional[str] = None,
    ) -> ApplyResult:
        mode = "Simulating" if dry_run else "Applying"
        logger.info("%s patch for %s", mode, coordinate.describe())
        try:
            if document.kind != coordinate.resource_kind.value:
                raise ValidationFault(
                    f"patch kind {document.kind} does not match target kind {coordinate.resource_kind.value}"
                )
            body = document.resolved_body(coordinate)
            ensure_valid(body)
            cluster: ClusterClient = self.clusters.get(coordinate.cluster_id)
            response = cluster.patch(
                coordinate.resource_kind,
                coordinate.namespace,
                coordinate.resource_name,
                body,
                dry_run=dry_run,
            )
        except EngineError as exc:
            logger.error("Patch for %s failed: %s", coordinate.describe(), exc)
            return ApplyResult(
                success=False,
                applied_at=utcnow(),
                dry_run=dry_run,
                error_message=str(exc),
                item_id=item_id,
            )
        return ApplyResult(
            success=True,
            applied_at=utcnow(),
            dry_run=dry_run,
            k8s_response=response,
            item_id=item_id,
        )

    def apply_batch(self, items: Sequence[ApplyItem], dry_run: bool = False) -> BatchResult:
        mode = "Simulating" if dry_run else "Applying"
        logger.info("%s batch of %d patch(es)", mode, len(items))
        batch = BatchResult(dry_run=dry_run)
        for index, item in enumerate(items):
            if index > 0 and not dry_run:
                self._sleep(self.pause_seconds)
            batch.results.append(self.apply(item.coordinate, item.document, dry_run, item_id=item.item_id))
        logger.info("Batch completed: %d succeeded, %d failed", batch.successful, batch.failed)
        return batch


__all__ = ["PatchApplier", "ApplyItem", "BATCH_PAUSE_SECONDS"]
