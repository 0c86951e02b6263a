"""Content-type specific transform, merge and post-process strategies.

Each table is keyed by a Content-Type MIME string (e.g. ``application/json``).
Content types without an entry fall back to plain text behaviour.
"""

import json
from typing import Any, Callable, Dict

import yaml

from .merge import deep_merge

TransformStrategy = Callable[[Dict[str, Any], Any], Any]
MergeStrategy = Callable[[str, str], str]
PostProcessStrategy = Callable[[str], str]


def _is_unset(value: Any) -> bool:
    # Empty lists and dicts are real values, unlike None, "" or False
    if isinstance(value, (list, dict)):
        return False
    return not value


def plain_text_transform(schema: Dict[str, Any], value: Any) -> Any:
    """Leave values untouched."""
    return value


def json_transform(schema: Dict[str, Any], value: Any) -> Any:
    """Serialize structured values so they can be substituted into JSON text.

    Arrays and objects produced by sections (``skip_xform``) are left alone
    since the template iterates over them itself.
    """
    if schema.get("type") == "array":
        if _is_unset(value):
            return json.dumps([])
        if len(value) > 0 and not schema.get("skip_xform"):
            return json.dumps(value)

    if schema.get("type") == "object":
        if _is_unset(value):
            return json.dumps({})
        if not schema.get("skip_xform"):
            return json.dumps(value)

    if schema.get("format") == "text" and value:
        return json.dumps(value)

    return value


def _merge_documents(acc: Any, curr: Any) -> Any:
    if isinstance(acc, dict) and isinstance(curr, dict):
        return deep_merge(acc, curr)
    return curr


def plain_text_merge(acc: str, curr: str) -> str:
    return f"{acc}\n{curr}"


def json_merge(acc: str, curr: str) -> str:
    return json.dumps(
        _merge_documents(yaml.safe_load(acc), yaml.safe_load(curr)),
        indent=2,
        ensure_ascii=False,
    )


def yaml_merge(acc: str, curr: str) -> str:
    return yaml.safe_dump(
        _merge_documents(yaml.safe_load(acc), yaml.safe_load(curr)), sort_keys=False
    )


def json_post_process(rendered: str) -> str:
    """Normalize rendered JSON into indented form."""
    if rendered.strip() == "":
        rendered = '""'
    return json.dumps(yaml.safe_load(rendered), indent=2, ensure_ascii=False)


def yaml_post_process(rendered: str) -> str:
    """Normalize rendered YAML."""
    if rendered.strip() == "":
        rendered = '""'
    return yaml.safe_dump(yaml.safe_load(rendered), sort_keys=False)


transform_strategies: Dict[str, TransformStrategy] = {
    "application/json": json_transform,
}

merge_strategies: Dict[str, MergeStrategy] = {
    "application/json": json_merge,
    "application/x-yaml": yaml_merge,
    "application/yaml": yaml_merge,
    "text/x-yaml": yaml_merge,
}

post_process_strategies: Dict[str, PostProcessStrategy] = {
    "application/json": json_post_process,
    "application/x-yaml": yaml_post_process,
    "application/yaml": yaml_post_process,
    "text/x-yaml": yaml_post_process,
}


def get_transform_strategy(content_type: str) -> TransformStrategy:
    return transform_strategies.get(content_type, plain_text_transform)


def get_merge_strategy(content_type: str) -> MergeStrategy:
    return merge_strategies.get(content_type, plain_text_merge)
