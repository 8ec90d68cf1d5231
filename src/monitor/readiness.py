from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from src.cluster.client import ClusterRegistry
from src.common.errors import NotFoundFault, OperationCancelled, TimeoutFault
from src.common.kinds import ResourceKind
from src.common.models import ResourceCoordinate

logger = logging.getLogger(__name__)

POLL_INTERVAL_SECONDS = 5.0
DEFAULT_TIMEOUT_SECONDS = 300.0
NEGATIVE_CONDITION_TYPES = ("Available", "Progressing")


@dataclass
class ReadinessStatus:
    ready: bool
    desired: int
    ready_replicas: int
    reason: Optional[str] = None
    conditions: List[Dict[str, Any]] = field(default_factory=list)


@dataclass
class ReadySignal:
    coordinate: ResourceCoordinate
    duration_seconds: float
    status: ReadinessStatus


def _replica_counts(kind: ResourceKind, resource: Dict[str, Any]) -> Tuple[int, int]:
    spec = resource.get("spec") or {}
    status = resource.get("status") or {}
    if kind is ResourceKind.DAEMONSET:
        return int(status.get("desiredNumberScheduled") or 0), int(status.get("numberReady") or 0)
    if kind is ResourceKind.JOB:
        desired = int(spec.get("parallelism") or 1)
        return desired, int(status.get("ready") or 0) + int(status.get("succeeded") or 0)
    if kind is ResourceKind.CRONJOB:
        # A CronJob has no pods of its own until the next schedule fires.
        return 0, 0
    replicas = spec.get("replicas")
    return (1 if replicas is None else int(replicas)), int(status.get("readyReplicas") or 0)


def evaluate(kind: ResourceKind, resource: Dict[str, Any]) -> ReadinessStatus:
    desired, ready = _replica_counts(kind, resource)
    conditions = list((resource.get("status") or {}).get("conditions") or [])
    if kind is ResourceKind.JOB:
        ready = min(ready, desired)
    if ready != desired:
        return ReadinessStatus(False, desired, ready, f"Pods not ready: {ready}/{desired}", conditions)
    negative = [
        str(condition.get("type"))
        for condition in conditions
        if condition.get("status") == "False" and condition.get("type") in NEGATIVE_CONDITION_TYPES
    ]
    if negative:
        return ReadinessStatus(False, desired, ready, f"Negative conditions: {', '.join(negative)}", conditions)
    return ReadinessStatus(True, desired, ready, None, conditions)


class ReadinessMonitor:
    def __init__(
        self,
        clusters: ClusterRegistry,
        *,
        poll_interval: float = POLL_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        sleep: Optional[Callable[[float], None]] = None,
    ) -> None:
        self.clusters = clusters
        self.poll_interval = poll_interval
        self._clock = clock
        self._sleep = sleep

    def check(self, coordinate: ResourceCoordinate) -> ReadinessStatus:
        cluster = self.clusters.get(coordinate.cluster_id)
        resource = cluster.read(coordinate.resource_kind, coordinate.namespace, coordinate.resource_name)
        return evaluate(coordinate.resource_kind, resource)

    def _pause(self, seconds: float, cancel: Optional[threading.Event]) -> None:
        if self._sleep is not None:
            self._sleep(seconds)
        elif cancel is not None:
            cancel.wait(seconds)
        else:
            time.sleep(seconds)

    def await_ready(
        self,
        coordinate: ResourceCoordinate,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        cancel: Optional[threading.Event] = None,
    ) -> ReadySignal:
        """Poll until ``coordinate`` is ready, the deadline passes, or ``cancel`` is set."""

        started = self._clock()
        deadline = started + timeout
        while True:
            if cancel is not None and cancel.is_set():
                raise OperationCancelled(f"Monitoring of {coordinate.describe()} cancelled")
            try:
                status = self.check(coordinate)
            except NotFoundFault as exc:
                raise NotFoundFault(f"{coordinate.describe()} disappeared during monitoring") from exc

            now = self._clock()
            if status.ready:
                logger.info("%s ready after %.1fs", coordinate.describe(), now - started)
                return ReadySignal(coordinate=coordinate, duration_seconds=now - started, status=status)
            if now >= deadline:
                raise TimeoutFault(
                    f"Timed out waiting for {coordinate.describe()}: {status.reason}",
                    reason=status.reason,
                )
            logger.debug("%s not ready yet: %s", coordinate.describe(), status.reason)
            self._pause(min(self.poll_interval, deadline - now), cancel)


__all__ = [
    "ReadinessMonitor",
    "ReadinessStatus",
    "ReadySignal",
    "evaluate",
    "POLL_INTERVAL_SECONDS",
    "DEFAULT_TIMEOUT_SECONDS",
]
