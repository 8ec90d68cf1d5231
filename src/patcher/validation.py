from __future__ import annotations

from typing import Any, Dict, List

from src.common.errors import UnsupportedKindFault, ValidationFault
from src.common.kinds import find_containers, kind_spec

from .units import TI, parse_cpu, parse_memory

MAX_CPU_MILLICORES = 100_000
MAX_MEMORY_BYTES = TI


def _check_quantity(container: str, scope: str, resource: str, raw: Any) -> List[str]:
    if resource == "cpu":
        value = parse_cpu(raw)
        upper, label = MAX_CPU_MILLICORES, "CPU"
    else:
        value = parse_memory(raw)
        upper, label = MAX_MEMORY_BYTES, "memory"
    if value is None:
        return [f"container {container}: unparseable {label} {scope} {raw!r}"]
    if value <= 0 or value > upper:
        return [f"container {container}: {label} {scope} out of range: {raw}"]
    return []


def validate_document(body: Dict[str, Any]) -> List[str]:
    """Return every structural problem found in a patch document body."""

    if not isinstance(body, dict):
        return ["patch document must be a mapping"]
    errors: List[str] = []
    if not body.get("apiVersion") or not body.get("kind"):
        errors.append("patch is missing kind or apiVersion")
        return errors
    try:
        spec = kind_spec(body["kind"])
    except UnsupportedKindFault as exc:
        return [str(exc)]
    if body["apiVersion"] != spec.api_version:
        errors.append(f"apiVersion {body['apiVersion']} does not match {spec.api_version} for {spec.kind.value}")

    metadata = body.get("metadata")
    if not isinstance(metadata, dict) or not metadata.get("name") or not metadata.get("namespace"):
        errors.append("metadata is missing name or namespace")

    containers = find_containers(body, spec.kind)
    if not containers:
        errors.append(f"no containers found at {'.'.join(spec.container_path)}")
        return errors

    for index, container in enumerate(containers):
        if not isinstance(container, dict) or not container.get("name"):
            errors.append(f"container #{index} has no name")
            continue
        name = container["name"]
        resources = container.get("resources")
        if not isinstance(resources, dict) or not any(resources.get(scope) for scope in ("requests", "limits")):
            errors.append(f"container {name} has no resources section")
            continue
        for scope in ("requests", "limits"):
            block = resources.get(scope) or {}
            if not isinstance(block, dict):
                errors.append(f"container {name}: {scope} must be a mapping")
                continue
            for resource, raw in block.items():
                if resource not in ("cpu", "memory"):
                    errors.append(f"container {name}: unexpected resource {scope}.{resource}")
                    continue
                errors.extend(_check_quantity(name, scope, resource, raw))
    return errors


def ensure_valid(body: Dict[str, Any]) -> None:
    errors = validate_document(body)
    if errors:
        raise ValidationFault("patch document failed validation", errors)


__all__ = ["validate_document", "ensure_valid", "MAX_CPU_MILLICORES", "MAX_MEMORY_BYTES"]
