"""
Key-case conversion for documents exchanged with the store and the browser.
"""

from __future__ import annotations

import re
from typing import Any, Literal

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])([A-Z])")


def camel_to_snake(name: str) -> str:
    return _CAMEL_BOUNDARY.sub(r"_\1", name).lower()


def snake_to_camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


def convert_keys(
    obj: Any, direction: Literal["camel_to_snake", "snake_to_camel"]
) -> Any:
    """Recursively rename dict keys; lists are walked, other values kept."""
    convert = camel_to_snake if direction == "camel_to_snake" else snake_to_camel
    if isinstance(obj, dict):
        return {
            convert(k) if isinstance(k, str) else k: convert_keys(v, direction)
            for k, v in obj.items()
        }
    if isinstance(obj, list):
        return [convert_keys(item, direction) for item in obj]
    return obj
