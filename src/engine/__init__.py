"""Patch orchestration engine and operator CLI."""

from .engine import CoordinateLocks, PatchEngine

__all__ = ["CoordinateLocks", "PatchEngine"]
