"""Fault taxonomy shared by every engine component."""

from __future__ import annotations

from typing import Iterable, List, Optional


class EngineError(Exception):
    """Base class for faults raised by the patch orchestration engine."""


class ValidationFault(EngineError):
    """Raised when patch input or a built document is malformed or out of range."""

    def __init__(self, message: str, errors: Optional[Iterable[str]] = None) -> None:
        self.errors: List[str] = list(errors or [])
        if self.errors:
            message = f"{message}: {'; '.join(self.errors)}"
        super().__init__(message)


class NotFoundFault(EngineError):
    """Raised when the target resource does not exist in the cluster."""


class CorruptBackupFault(EngineError):
    """Raised when a backup checksum no longer matches its stored body."""


class UnsupportedKindFault(EngineError):
    """Raised for resource kinds outside the supported workload set."""


class ClusterCommunicationFault(EngineError):
    """Raised when a cluster API call fails for any reason other than 404."""


class TimeoutFault(EngineError):
    """Raised when a readiness wait exceeds its deadline."""

    def __init__(self, message: str, reason: Optional[str] = None) -> None:
        self.reason = reason
        super().__init__(message)


class OperationCancelled(EngineError):
    """Raised when the caller cancels a readiness wait."""


class NoChangesNeeded(EngineError):
    """Every proposed field was rejected by the strategy; nothing to patch.

    This is an expected outcome rather than a failure and callers should not
    log it as an error.
    """


__all__ = [
    "EngineError",
    "ValidationFault",
    "NotFoundFault",
    "CorruptBackupFault",
    "UnsupportedKindFault",
    "ClusterCommunicationFault",
    "TimeoutFault",
    "OperationCancelled",
    "NoChangesNeeded",
]
