"""Cluster collaborator: read, patch, and replace workload resources per kind."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional

from kubernetes import client, config
from kubernetes.client.rest import ApiException

from src.common.config import ClusterOptions, EngineConfig
from src.common.errors import ClusterCommunicationFault, NotFoundFault
from src.common.kinds import kind_spec

logger = logging.getLogger(__name__)

DRY_RUN_ALL = "All"
STRATEGIC_MERGE_PATCH = "application/strategic-merge-patch+json"


class ClusterClient:
    """Capabilities the engine needs from a cluster, keyed by workload kind."""

    def read(self, kind: Any, namespace: str, name: str) -> Dict[str, Any]:
        raise NotImplementedError

    def patch(self, kind: Any, namespace: str, name: str, body: Dict[str, Any], dry_run: bool = False) -> Dict[str, Any]:
        raise NotImplementedError

    def replace(self, kind: Any, namespace: str, name: str, body: Dict[str, Any], dry_run: bool = False) -> Dict[str, Any]:
        raise NotImplementedError

    def health_check(self) -> Dict[str, Any]:
        raise NotImplementedError


class KubernetesClusterClient(ClusterClient):
    """:class:`ClusterClient` backed by the official Kubernetes Python client.

    ``patch`` always sends a strategic merge patch (the client would otherwise
    pick JSON Patch for a PATCH body); ``replace`` issues a full update.
    """

    def __init__(self, api_client: client.ApiClient, context: Optional[str] = None) -> None:
        self.api_client = api_client
        self.context = context
        self.apps_api = client.AppsV1Api(api_client)
        self.batch_api = client.BatchV1Api(api_client)
        self.core_api = client.CoreV1Api(api_client)

    @classmethod
    def from_options(cls, options: ClusterOptions) -> "KubernetesClusterClient":
        """In-cluster config first, then kubeconfig, unless a kubeconfig or context is pinned."""

        explicit = bool(options.kubeconfig or options.context)
        if options.in_cluster or not explicit:
            try:
                config.load_incluster_config()
            except config.ConfigException as exc:
                if options.in_cluster:
                    raise ClusterCommunicationFault(f"In-cluster configuration error: {exc}") from exc
                logger.warning("Failed to load in-cluster config, trying kubeconfig")
            else:
                logger.info("Loaded in-cluster Kubernetes config")
                return cls(client.ApiClient(), context="in-cluster")
        try:
            api_client = config.new_client_from_config(config_file=options.kubeconfig, context=options.context)
        except config.ConfigException as exc:
            raise ClusterCommunicationFault(f"Kubernetes configuration error: {exc}") from exc
        logger.info("Loaded kubeconfig (context=%s)", options.context or "current")
        return cls(api_client, context=options.context)

    def read(self, kind: Any, namespace: str, name: str) -> Dict[str, Any]:
        return self._call("read", kind, name=name, namespace=namespace)

    def patch(self, kind: Any, namespace: str, name: str, body: Dict[str, Any], dry_run: bool = False) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {
            "name": name,
            "namespace": namespace,
            "body": body,
            "_content_type": STRATEGIC_MERGE_PATCH,
        }
        if dry_run:
            kwargs["dry_run"] = DRY_RUN_ALL
        return self._call("patch", kind, **kwargs)

    def replace(self, kind: Any, namespace: str, name: str, body: Dict[str, Any], dry_run: bool = False) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {"name": name, "namespace": namespace, "body": body}
        if dry_run:
            kwargs["dry_run"] = DRY_RUN_ALL
        return self._call("replace", kind, **kwargs)

    def health_check(self) -> Dict[str, Any]:
        try:
            namespaces = self.core_api.list_namespace()
        except Exception as exc:  # pragma: no cover - depends on a live cluster
            logger.error("Kubernetes health check failed: %s", exc)
            return {"connected": False, "error": str(exc)}
        return {
            "connected": True,
            "namespaces": len(namespaces.items),
            "context": self.context or "current",
        }

    def _call(self, verb: str, kind: Any, **kwargs: Any) -> Dict[str, Any]:
        spec = kind_spec(kind)
        api = self.apps_api if spec.api_version == "apps/v1" else self.batch_api
        method = getattr(api, f"{verb}_namespaced_{spec.api_name}")
        target = f"{spec.kind.value}/{kwargs.get('namespace')}/{kwargs.get('name')}"
        try:
            response = method(**kwargs)
        except ApiException as exc:
            if exc.status == 404:
                raise NotFoundFault(f"Resource {target} not found") from exc
            raise ClusterCommunicationFault(f"{verb} {target} failed ({exc.status}): {exc.reason}") from exc
        except Exception as exc:  # pragma: no cover - transport level failure
            raise ClusterCommunicationFault(f"{verb} {target} failed: {exc}") from exc
        return self.api_client.sanitize_for_serialization(response)


class ClusterRegistry:
    """Resolves ``cluster_id`` values to :class:`ClusterClient` instances."""

    def __init__(
        self,
        clients: Optional[Dict[str, ClusterClient]] = None,
        factory: Optional[Callable[[str], ClusterClient]] = None,
    ) -> None:
        self._clients: Dict[str, ClusterClient] = dict(clients or {})
        self._factory = factory

    @classmethod
    def from_config(cls, engine_config: EngineConfig) -> "ClusterRegistry":
        return cls(factory=lambda cluster_id: KubernetesClusterClient.from_options(engine_config.cluster(cluster_id)))

    def register(self, cluster_id: str, cluster_client: ClusterClient) -> None:
        self._clients[cluster_id] = cluster_client

    def get(self, cluster_id: str) -> ClusterClient:
        if cluster_id not in self._clients:
            if self._factory is None:
                raise ClusterCommunicationFault(f"No cluster client registered for {cluster_id!r}")
            self._clients[cluster_id] = self._factory(cluster_id)
        return self._clients[cluster_id]


__all__ = ["ClusterClient", "KubernetesClusterClient", "ClusterRegistry", "DRY_RUN_ALL", "STRATEGIC_MERGE_PATCH"]
