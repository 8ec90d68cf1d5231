"""Cluster collaborator backed by the Kubernetes API."""

from .client import ClusterClient, ClusterRegistry, KubernetesClusterClient

__all__ = ["ClusterClient", "ClusterRegistry", "KubernetesClusterClient"]
