"""Layered merge for the config cascade (user -> project -> environment)."""

from __future__ import annotations

from typing import Any


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return a new dict with ``override`` layered over ``base``.

    Nested mappings merge key by key. A ``None`` in the override leaves the
    base value alone, so a project file can mention a section without
    resetting what the user file set. Anything else, lists included,
    replaces the base value outright.
    """
    merged = dict(base)
    for key, value in override.items():
        if value is None:
            continue
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = deep_merge(current, value)
        else:
            merged[key] = value
    return merged


def merge_configs(*layers: dict[str, Any]) -> dict[str, Any]:
    """Merge config layers in priority order, lowest first."""
    merged: dict[str, Any] = {}
    for layer in layers:
        if layer:
            merged = deep_merge(merged, layer)
    return merged
