"""Recursive merge helpers for schema fragments and parameter sets."""

import copy
from typing import Any, Dict, Iterable, List


def deep_merge(
    base: Dict[str, Any], override: Dict[str, Any], concat_arrays: bool = False
) -> Dict[str, Any]:
    """Merge two dictionaries into a new one.

    Nested dictionaries are merged recursively. Lists from ``override`` replace
    those in ``base`` unless ``concat_arrays`` is set, in which case they are
    appended. Neither input is modified and the result shares no mutable
    values with them.

    Args:
        base: Dictionary to merge into
        override: Dictionary whose values win on conflict
        concat_arrays: Append lists instead of replacing them

    Returns:
        Merged dictionary
    """
    result = copy.deepcopy(base)

    for key, value in override.items():
        current = result.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            result[key] = deep_merge(current, value, concat_arrays)
        elif concat_arrays and isinstance(current, list) and isinstance(value, list):
            result[key] = current + copy.deepcopy(value)
        else:
            result[key] = copy.deepcopy(value)

    return result


def deep_merge_all(
    items: Iterable[Dict[str, Any]], concat_arrays: bool = False
) -> Dict[str, Any]:
    """Fold ``deep_merge`` over a sequence, later entries winning."""
    result: Dict[str, Any] = {}
    for item in items:
        result = deep_merge(result, item, concat_arrays)
    return result


def unique(values: Iterable[Any]) -> List[Any]:
    """Deduplicate while keeping first-seen order."""
    return list(dict.fromkeys(values))
