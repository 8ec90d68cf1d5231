"""Shared types, faults, configuration, and logging setup."""
