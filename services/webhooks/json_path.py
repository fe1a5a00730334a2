"""
Minimal JSON path extraction.

Supports ``$.field``, ``$.nested.field``, ``$.items[0].name`` and numeric dot
segments (``items.0``). The leading ``$.`` is optional for ``extract_path``;
``extract_value`` treats strings without it as static values.
"""

import re
from typing import Any

_SEGMENT = re.compile(r"([^.\[\]]+)|\[(\d+)\]")


def extract_path(data: Any, path: str) -> Any:
    """Follow ``path`` into ``data``; missing segments yield None."""
    if path in ("", "$"):
        return data
    if path.startswith("$."):
        path = path[2:]

    current = data
    for name, index in _SEGMENT.findall(path):
        if current is None:
            return None
        if index:
            if not isinstance(current, list) or int(index) >= len(current):
                return None
            current = current[int(index)]
        elif isinstance(current, dict):
            current = current.get(name)
        elif isinstance(current, list) and name.isdigit():
            current = current[int(name)] if int(name) < len(current) else None
        else:
            return None
    return current


def is_path(value: Any) -> bool:
    return isinstance(value, str) and (value == "$" or value.startswith("$."))


def extract_value(payload: Any, path_or_value: Any) -> Any:
    """JSON path lookup for ``$.``-prefixed strings, otherwise the value itself."""
    if is_path(path_or_value):
        return extract_path(payload, path_or_value)
    return path_or_value
