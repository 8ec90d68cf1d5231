"""Recommendation ingestion."""

from .krr import KrrScan, parse_krr_output, summarize, validate_krr_output

__all__ = ["KrrScan", "parse_krr_output", "summarize", "validate_krr_output"]
