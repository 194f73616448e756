"""Merging of chart values.

Values files are layered in order and explicit overrides are applied last.
Nested mappings merge key by key; any other value, lists included, replaces
what came before.
"""

from __future__ import annotations

import copy
from collections.abc import Iterable, Mapping
from typing import Any


def deep_merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    """Merge ``override`` into a copy of ``base``.

    Args:
        base: Lower precedence values.
        override: Higher precedence values.

    Returns:
        A new mapping; neither input is modified.

    Example:
        {"image": {"tag": "1", "pull": "Always"}} + {"image": {"tag": "2"}}
        -> {"image": {"tag": "2", "pull": "Always"}}
    """
    merged: dict[str, Any] = copy.deepcopy(dict(base))
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, Mapping) and isinstance(value, Mapping):
            merged[key] = deep_merge(current, value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def merge_all(layers: Iterable[Mapping[str, Any]]) -> dict[str, Any]:
    """Merge value layers from lowest to highest precedence."""
    merged: dict[str, Any] = {}
    for layer in layers:
        merged = deep_merge(merged, layer)
    return merged
