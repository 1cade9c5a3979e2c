"""Render a version's webhook mapping against a submission context."""
import json
import re
from collections.abc import Mapping
from typing import Any

TOKEN_PATTERN = re.compile(r"{{\s*([^}]+?)\s*}}")


def resolve_path(source: Any, path: str) -> Any:
    """Follow a dotted path through nested dicts; None when any segment is missing."""
    cursor = source
    for segment in (part for part in path.split(".") if part):
        if isinstance(cursor, Mapping):
            cursor = cursor.get(segment)
        elif isinstance(cursor, (list, tuple)) and segment.isdigit():
            index = int(segment)
            cursor = cursor[index] if index < len(cursor) else None
        else:
            return None
        if cursor is None:
            return None
    return cursor


def _interpolate(value: str, context: Mapping) -> Any:
    matches = list(TOKEN_PATTERN.finditer(value))

    # A lone token keeps the resolved value's type
    if len(matches) == 1 and matches[0].group(0).strip() == value.strip():
        return resolve_path(context, matches[0].group(1).strip())

    def replace(match):
        resolved = resolve_path(context, match.group(1).strip())
        if resolved is None:
            return ""
        if isinstance(resolved, (Mapping, list)):
            return json.dumps(resolved)
        if isinstance(resolved, bool):
            return "true" if resolved else "false"
        return str(resolved)

    return TOKEN_PATTERN.sub(replace, value)


def apply_webhook_mapping(mapping: Any, context: Mapping) -> Any:
    """
    Build the mapped response for a submission.

    Strings may contain {{dotted.path}} tokens resolved against context; dicts
    and lists are mapped recursively. Without a mapping the raw answers are
    returned.
    """
    if not mapping:
        return context.get("answers")
    return _apply(mapping, context)


def _apply(mapping: Any, context: Mapping) -> Any:
    if isinstance(mapping, list):
        return [_apply(item, context) for item in mapping]
    if isinstance(mapping, Mapping):
        return {key: _apply(value, context) for key, value in mapping.items()}
    if isinstance(mapping, str):
        return _interpolate(mapping, context)
    return mapping
