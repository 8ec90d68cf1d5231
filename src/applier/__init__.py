"""Patch submission against the cluster, singly or in sequential batches."""

from .applier import ApplyItem, PatchApplier

__all__ = ["ApplyItem", "PatchApplier"]
