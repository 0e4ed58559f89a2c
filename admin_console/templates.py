"""
Placeholder substitution for `{{name}}` tokens.
"""

from __future__ import annotations

import re
from typing import Any, Mapping

TOKEN_PATTERN = re.compile(r"\{\{([A-Za-z_][A-Za-z0-9_]*)\}\}")


def render_text(text: str, variables: Mapping[str, Any]) -> str:
    """
    Replace every `{{name}}` token in one left-to-right pass.

    Tokens without a matching entry are kept verbatim. Substituted values are
    not rescanned, so a value containing `{{...}}` comes out as literal text.
    """

    def substitute(match: re.Match) -> str:
        name = match.group(1)
        if name not in variables or variables[name] is None:
            return match.group(0)
        return str(variables[name])

    return TOKEN_PATTERN.sub(substitute, text)


def find_tokens(text: str) -> list[str]:
    """Token names in order of first appearance."""
    seen: list[str] = []
    for match in TOKEN_PATTERN.finditer(text):
        if match.group(1) not in seen:
            seen.append(match.group(1))
    return seen
