"""Reverse patches from verified backups."""

from .manager import RollbackItem, RollbackManager

__all__ = ["RollbackItem", "RollbackManager"]
