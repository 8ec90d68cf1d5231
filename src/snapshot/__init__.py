"""Resource snapshots with checksum integrity."""

from .snapshotter import Snapshotter, clean_resource, compute_checksum, verify_integrity

__all__ = ["Snapshotter", "clean_resource", "compute_checksum", "verify_integrity"]
