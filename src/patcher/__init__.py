"""Patch document construction, validation, and unit formatting."""

from .builder import CumulativeBatch, PatchBuilder, PatchDocument, group_by_resource
from .units import format_cpu, format_memory, parse_cpu, parse_memory
from .validation import ensure_valid, validate_document

__all__ = [
    "CumulativeBatch",
    "PatchBuilder",
    "PatchDocument",
    "group_by_resource",
    "format_cpu",
    "format_memory",
    "parse_cpu",
    "parse_memory",
    "ensure_valid",
    "validate_document",
]
