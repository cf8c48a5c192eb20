from __future__ import annotations

import json
import re
from collections.abc import Mapping
from typing import Any

_PLACEHOLDER_PATTERN = re.compile(r"\{\{([\w.]+)\}\}")
_MISSING = object()


def get_nested(data: Mapping[str, Any], path: str) -> Any:
    """Look up a dotted path; returns ``None`` when any segment is missing."""
    current: Any = data
    for part in path.split("."):
        if isinstance(current, Mapping):
            current = current.get(part, _MISSING)
        elif isinstance(current, list) and part.isdigit():
            index = int(part)
            current = current[index] if index < len(current) else _MISSING
        else:
            return None
        if current is _MISSING:
            return None
    return current


def set_nested(data: dict[str, Any], path: str, value: Any) -> None:
    parts = path.split(".")
    current = data
    for part in parts[:-1]:
        child = current.get(part)
        if not isinstance(child, dict):
            child = {}
            current[part] = child
        current = child
    current[parts[-1]] = value


def format_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False)
    return str(value)


def interpolate(template: str, context: Mapping[str, Any]) -> str:
    """Replace ``{{dotted.path}}`` placeholders; unknown paths become empty strings."""

    def _replace(match: re.Match[str]) -> str:
        return format_value(get_nested(context, match.group(1)))

    return _PLACEHOLDER_PATTERN.sub(_replace, template)


def has_placeholders(template: str) -> bool:
    return _PLACEHOLDER_PATTERN.search(template) is not None
