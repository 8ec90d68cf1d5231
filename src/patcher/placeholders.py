from __future__ import annotations

import copy
from typing import Any, Mapping

RESOURCE_NAME_TOKEN = "${RESOURCE_NAME}"
NAMESPACE_TOKEN = "${NAMESPACE}"


def substitute(tree: Any, values: Mapping[str, str]) -> Any:
    """Return a copy of ``tree`` with string leaves equal to a token replaced.

    Only leaves whose whole value is exactly one of the tokens are replaced;
    keys and strings that merely contain a token are left untouched.
    """

    if isinstance(tree, dict):
        return {key: substitute(value, values) for key, value in tree.items()}
    if isinstance(tree, list):
        return [substitute(item, values) for item in tree]
    if isinstance(tree, str) and tree in values:
        return values[tree]
    return copy.copy(tree)


def resolve_target(tree: Any, namespace: str, resource_name: str) -> Any:
    return substitute(tree, {NAMESPACE_TOKEN: namespace, RESOURCE_NAME_TOKEN: resource_name})


__all__ = ["RESOURCE_NAME_TOKEN", "NAMESPACE_TOKEN", "substitute", "resolve_target"]
