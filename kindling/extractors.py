"""Frontmatter extraction for Kindling.

Every renderable page may start with a YAML block delimited by ``---`` lines.
The block becomes the page's frontmatter mapping and the rest of the file is
the body handed to the template engine.
"""

from __future__ import annotations

import re
from typing import Any

import yaml

FRONTMATTER_RE = re.compile(
    r"\A---[ \t]*\r?\n(?P<meta>.*?)^---[ \t]*(?:\r?\n|\Z)",
    re.DOTALL | re.MULTILINE,
)


def extract_frontmatter(text: str) -> tuple[dict[str, Any], str]:
    """Extract YAML frontmatter from content.

    Args:
        text: Raw file content.

    Returns:
        Tuple of (frontmatter dict, remaining content).

    Raises:
        yaml.YAMLError: The delimited block is not valid YAML.
    """
    match = FRONTMATTER_RE.match(text)
    if not match:
        return {}, text
    data = yaml.safe_load(match.group("meta")) or {}
    if not isinstance(data, dict):
        return {}, text
    return {str(k): v for k, v in data.items()}, text[match.end() :]


def markdown_override(frontmatter: dict[str, Any]) -> bool | None:
    """Return the page's ``markdown`` flag, or None when it is not a boolean."""
    value = frontmatter.get("markdown")
    return value if isinstance(value, bool) else None
