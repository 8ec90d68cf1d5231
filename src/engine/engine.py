"""End-to-end orchestration: generate, back up, apply, monitor, and roll back."""

from __future__ import annotations

import logging
import threading
import time
from contextlib import ExitStack, contextmanager
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Union

from src.applier.applier import ApplyItem, PatchApplier
from src.cluster.client import ClusterRegistry
from src.common.config import EngineConfig
from src.common.errors import (
    ClusterCommunicationFault,
    EngineError,
    NoChangesNeeded,
    NotFoundFault,
    OperationCancelled,
    TimeoutFault,
)
from src.common.models import ApplyResult, Backup, BatchResult, Recommendation, utcnow
from src.monitor.readiness import ReadinessMonitor
from src.patcher.builder import CumulativeBatch, PatchBuilder, PatchDocument
from src.rollback.manager import RollbackItem, RollbackManager
from src.snapshot.snapshotter import Snapshotter
from src.strategy.policy import StrategyRegistry, default_registry

logger = logging.getLogger(__name__)


def _not_attempted(item: ApplyItem, dry_run: bool) -> ApplyResult:
    return ApplyResult(
        success=False,
        applied_at=utcnow(),
        dry_run=dry_run,
        error_message="Not attempted: batch cancelled",
        item_id=item.item_id,
    )


class CoordinateLocks:
    """In-process advisory locks keyed by resource coordinate."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}
        # Holders and waiters per key; an entry is dropped when this reaches zero.
        self._users: Dict[str, int] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    def _checkout(self, key: str) -> threading.Lock:
        with self._guard:
            self._users[key] = self._users.get(key, 0) + 1
            return self._locks.setdefault(key, threading.Lock())

    def _checkin(self, key: str) -> None:
        with self._guard:
            self._users[key] -= 1
            if not self._users[key]:
                del self._users[key]
                del self._locks[key]

    @contextmanager
    def hold(self, *keys: str) -> Iterator[None]:
        # Sorted acquisition keeps multi-key holders from deadlocking each other.
        with ExitStack() as stack:
            for key in sorted(set(keys)):
                lock = self._checkout(key)
                stack.callback(self._checkin, key)
                stack.enter_context(lock)
            yield


class PatchEngine:
    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        clusters: Optional[ClusterRegistry] = None,
        registry: Optional[StrategyRegistry] = None,
        *,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config or EngineConfig()
        self.clusters = clusters or ClusterRegistry.from_config(self.config)
        self.registry = registry or default_registry()
        self._sleep = sleep
        self.locks = CoordinateLocks()
        self.builder = PatchBuilder(self.registry, self.config.custom_rules)
        self.applier = PatchApplier(self.clusters, pause_seconds=self.config.batch_pause_seconds, sleep=sleep)
        self.rollback_manager = RollbackManager(
            self.clusters, pause_seconds=self.config.batch_pause_seconds, sleep=sleep
        )
        self.monitor = ReadinessMonitor(
            self.clusters,
            poll_interval=self.config.poll_interval_seconds,
            clock=clock,
            sleep=sleep,
        )

    def strategies(self) -> List[Dict[str, Any]]:
        return self.registry.describe()

    def generate(
        self,
        recommendations: Sequence[Recommendation],
        strategy: Optional[str] = None,
        cumulative: bool = False,
    ) -> Union[CumulativeBatch, List[PatchDocument]]:
        """Build one document per recommendation, or one per resource when ``cumulative``.

        Recommendations that need no change are skipped (logged, not raised).
        """

        strategy = strategy or self.config.default_strategy
        if cumulative:
            return self.builder.build_cumulative(recommendations, strategy)
        documents: List[PatchDocument] = []
        for recommendation in recommendations:
            try:
                documents.append(self.builder.build_single(recommendation, strategy))
            except NoChangesNeeded as exc:
                logger.info("%s", exc)
        return documents

    def health_check(self, cluster_ids: Sequence[str]) -> Dict[str, Dict[str, Any]]:
        """Check every distinct cluster; raises :class:`ClusterCommunicationFault` on the first unreachable one."""

        report: Dict[str, Dict[str, Any]] = {}
        for cluster_id in dict.fromkeys(cluster_ids):
            status = self.clusters.get(cluster_id).health_check()
            if not status.get("connected"):
                raise ClusterCommunicationFault(
                    f"Cluster {cluster_id} is not reachable: {status.get('error', 'unknown error')}"
                )
            report[cluster_id] = status
        return report

    def apply(
        self,
        items: Sequence[ApplyItem],
        dry_run: bool = False,
        create_backup: Optional[bool] = None,
        monitor: bool = False,
        timeout: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
    ) -> BatchResult:
        """Apply ``items`` sequentially, backing up each target before a real apply.

        Cluster reachability is checked before any mutation. Per-item faults are
        captured into the batch. Setting ``cancel`` stops the batch: the item
        being monitored is reported failed with its backup, later items are
        reported as not attempted, and the batch is returned marked cancelled.
        """

        create_backup = self.config.create_backup if create_backup is None else create_backup
        timeout = self.config.readiness_timeout_seconds if timeout is None else timeout
        self.health_check([item.coordinate.cluster_id for item in items])

        mode = "Simulating" if dry_run else "Applying"
        logger.info("%s %d patch(es) (backup=%s, monitor=%s)", mode, len(items), create_backup, monitor)
        batch = BatchResult(dry_run=dry_run)
        for index, item in enumerate(items):
            if index > 0 and not dry_run:
                self._sleep(self.config.batch_pause_seconds)
            if cancel is not None and cancel.is_set():
                logger.warning("Apply cancelled; %d patch(es) not attempted", len(items) - index)
                batch.results.extend(_not_attempted(rest, dry_run) for rest in items[index:])
                break
            with self.locks.hold(item.coordinate.resource_key):
                batch.results.append(self._apply_one(item, dry_run, create_backup, monitor, timeout, cancel))
        if cancel is not None and cancel.is_set():
            batch.cancelled = True
        logger.info("Apply completed: %d succeeded, %d failed", batch.successful, batch.failed)
        return batch

    def _apply_one(
        self,
        item: ApplyItem,
        dry_run: bool,
        create_backup: bool,
        monitor: bool,
        timeout: float,
        cancel: Optional[threading.Event],
    ) -> ApplyResult:
        coordinate = item.coordinate
        backup: Optional[Backup] = None
        if create_backup and not dry_run:
            try:
                snapshotter = Snapshotter(self.clusters.get(coordinate.cluster_id))
                backup = snapshotter.snapshot(coordinate)
            except EngineError as exc:
                logger.error("Backup of %s failed; patch not applied: %s", coordinate.describe(), exc)
                return ApplyResult(
                    success=False,
                    applied_at=utcnow(),
                    dry_run=dry_run,
                    error_message=f"Backup failed: {exc}",
                    item_id=item.item_id,
                )

        result = self.applier.apply(coordinate, item.document, dry_run, item_id=item.item_id)
        result.backup = backup
        if not (monitor and result.success and not dry_run):
            return result

        try:
            signal = self.monitor.await_ready(coordinate, timeout=timeout, cancel=cancel)
        except (TimeoutFault, NotFoundFault, ClusterCommunicationFault) as exc:
            logger.error("%s did not become ready: %s", coordinate.describe(), exc)
            result.success = False
            result.error_message = f"Patch applied but resource not ready: {exc}"
            result.readiness = {"ready": False, "reason": getattr(exc, "reason", None) or str(exc)}
            return result
        except OperationCancelled as exc:
            logger.warning("Readiness wait for %s cancelled after patching", coordinate.describe())
            result.success = False
            result.error_message = f"Patch applied but readiness wait cancelled: {exc}"
            result.readiness = {"ready": False, "reason": "cancelled"}
            return result
        result.readiness = {"ready": True, "duration_seconds": signal.duration_seconds}
        return result

    def rollback(self, items: Sequence[RollbackItem], dry_run: bool = False) -> BatchResult:
        """Restore ``items`` from their backups in reverse order."""

        with self.locks.hold(*(item.target.resource_key for item in items)):
            return self.rollback_manager.rollback_batch(items, dry_run=dry_run)


__all__ = ["PatchEngine", "CoordinateLocks"]
