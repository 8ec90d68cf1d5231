"""Kubernetes quantity formatting and parsing for CPU and memory."""

from __future__ import annotations

import re
from typing import Optional, Union

KI = 1024
MI = KI * 1024
GI = MI * 1024
TI = GI * 1024

_MEMORY_UNITS = (("Gi", GI), ("Mi", MI), ("Ki", KI))
_MEMORY_PARSE_UNITS = {
    "": 1,
    "Ki": KI,
    "Mi": MI,
    "Gi": GI,
    "Ti": TI,
    "K": 1000,
    "k": 1000,
    "M": 1000**2,
    "G": 1000**3,
    "T": 1000**4,
}
_MEMORY_PATTERN = re.compile(r"^(\d+(?:\.\d+)?)(Ki|Mi|Gi|Ti|K|k|M|G|T)?$")
_CPU_PATTERN = re.compile(r"^(\d+(?:\.\d+)?)(m)?$")


def format_cpu(millicores: int) -> str:
    """500 -> "500m", 1500 -> "1.5", 2000 -> "2"."""

    if millicores >= 1000:
        cores = millicores / 1000
        return str(int(cores)) if cores == int(cores) else str(cores)
    return f"{millicores}m"


def format_memory(value: int) -> str:
    """Render bytes with the largest binary unit that fits, one decimal at most."""

    for unit, size in _MEMORY_UNITS:
        if value >= size:
            if value % size == 0:
                return f"{value // size}{unit}"
            return f"{value / size:.1f}{unit}"
    return str(value)


def parse_cpu(text: Union[str, int, float, None]) -> Optional[float]:
    """Return millicores for a CPU quantity, ``None`` if it cannot be parsed."""

    if text is None:
        return None
    if isinstance(text, (int, float)):
        return float(text) * 1000
    match = _CPU_PATTERN.match(str(text).strip())
    if not match:
        return None
    number = float(match.group(1))
    return number if match.group(2) else number * 1000


def parse_memory(text: Union[str, int, float, None]) -> Optional[float]:
    """Return bytes for a memory quantity, ``None`` if it cannot be parsed."""

    if text is None:
        return None
    if isinstance(text, (int, float)):
        return float(text)
    match = _MEMORY_PATTERN.match(str(text).strip())
    if not match:
        return None
    return float(match.group(1)) * _MEMORY_PARSE_UNITS[match.group(2) or ""]


__all__ = ["format_cpu", "format_memory", "parse_cpu", "parse_memory", "KI", "MI", "GI", "TI"]
