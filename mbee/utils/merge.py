"""Helpers for the free-form ``custom`` JSON carried by every resource."""
import copy
from typing import Any, Dict, Optional


def deep_merge(base: Optional[Dict[str, Any]], updates: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Return a new dict with ``updates`` merged recursively into ``base``.

    Nested dicts merge key by key; any other value replaces what was there.
    Neither argument is mutated.
    """
    merged = copy.deepcopy(base) if base else {}
    for key, value in (updates or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged
