"""HTML utility functions for Kindling.

This module provides the HTML string manipulation used by the asset
finishing stages: escaping, URL joining, rewriting asset references after
cache-busting, and removing attributes that only restate browser defaults.

Functions:
    escape_html: Escape special HTML characters in a string.
    join_root_url: Join a base URL with a path.
    rewrite_asset_references: Point <link>/<script> tags at renamed assets.
    strip_redundant_type_attributes: Drop default type attributes.
"""

from __future__ import annotations

import re
from collections.abc import Mapping

# An opening <link> or <script> tag. Quoted attribute values may contain ">".
_ASSET_TAG_RE = re.compile(
    r"<(?P<tag>link|script)\b(?:[^>\"']|\"[^\"]*\"|'[^']*')*>",
    re.IGNORECASE,
)

_ATTR_RE = re.compile(
    r"(?P<lead>\s(?P<name>[a-zA-Z_:][-a-zA-Z0-9_:.]*)\s*=\s*)"
    r"(?:\"(?P<dq>[^\"]*)\"|'(?P<sq>[^']*)'|(?P<bare>[^\s\"'>]+))"
)

_REFERENCE_ATTRS = {"link": "href", "script": "src"}

_REDUNDANT_TYPE_RE = re.compile(
    r"<(?P<tag>script|style|link)\b(?:[^>\"']|\"[^\"]*\"|'[^']*')*>",
    re.IGNORECASE,
)
_REDUNDANT_TYPES = {
    "script": "text/javascript",
    "style": "text/css",
    "link": "text/css",
}


def escape_html(text: str) -> str:
    """Escape special HTML characters in a string.

    Converts the following characters to their HTML entity equivalents:
    - & becomes &amp;
    - < becomes &lt;
    - > becomes &gt;
    - " becomes &quot;

    Args:
        text: The string to escape.

    Returns:
        The escaped string, safe for inclusion in HTML and XML.

    Examples:
        >>> escape_html('https://example.com/?a=1&b=2')
        'https://example.com/?a=1&amp;b=2'
    """
    return (
        text.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
    )


def join_root_url(root_url: str, path: str) -> str:
    """Safely join a root URL and a path, avoiding double slashes.

    Args:
        root_url: Base URL (e.g., https://example.com/blog).
        path: Path beginning with or without a leading slash.

    Returns:
        Combined URL with proper slash handling.

    Examples:
        >>> join_root_url('https://example.com', '/about')
        'https://example.com/about'

        >>> join_root_url('https://example.com/', 'about')
        'https://example.com/about'
    """
    if not root_url:
        return path
    base = root_url.rstrip("/")
    suffix = path if path.startswith("/") else f"/{path}"
    return f"{base}{suffix}"


def _split_suffix(url: str) -> tuple[str, str]:
    """Split a URL into its path and any ``?query`` / ``#fragment`` tail."""
    for index, char in enumerate(url):
        if char in "?#":
            return url[:index], url[index:]
    return url, ""


def rewrite_asset_references(html: str, asset_map: Mapping[str, str]) -> str:
    """Rewrite stylesheet and script references to their hashed names.

    Only the ``href`` of ``<link>`` tags and the ``src`` of ``<script>`` tags
    are considered, so text elsewhere in the document that happens to
    contain an asset path is never touched. A reference matches when it
    equals an original asset path with or without one leading slash; the
    rewritten value is always root-relative.

    Args:
        html: HTML document.
        asset_map: Output-relative original path to output-relative hashed path.

    Returns:
        The document with matching references rewritten. The same string
        object is returned when nothing matched.
    """
    if not asset_map:
        return html

    def rewrite_attr(match: re.Match, wanted: str) -> str:
        if match.group("name").lower() != wanted:
            return match.group(0)
        quote = '"' if match.group("dq") is not None else (
            "'" if match.group("sq") is not None else ""
        )
        value = match.group("dq") if quote == '"' else (
            match.group("sq") if quote == "'" else match.group("bare")
        )
        path, tail = _split_suffix(value)
        key = path[1:] if path.startswith("/") else path
        hashed = asset_map.get(key)
        if hashed is None:
            return match.group(0)
        return f"{match.group('lead')}{quote}/{hashed}{tail}{quote}"

    def rewrite_tag(match: re.Match) -> str:
        wanted = _REFERENCE_ATTRS[match.group("tag").lower()]
        tag_html = match.group(0)
        return _ATTR_RE.sub(lambda m: rewrite_attr(m, wanted), tag_html)

    rewritten = _ASSET_TAG_RE.sub(rewrite_tag, html)
    return html if rewritten == html else rewritten


def strip_redundant_type_attributes(html: str) -> str:
    """Remove ``type`` attributes that repeat the browser default.

    ``type="text/javascript"`` on scripts and ``type="text/css"`` on styles
    and stylesheet links carry no information.
    """

    def strip_attr(match: re.Match) -> str:
        default = _REDUNDANT_TYPES[match.group("tag").lower()]
        tag_html = match.group(0)

        def drop(attr: re.Match) -> str:
            if attr.group("name").lower() != "type":
                return attr.group(0)
            value = attr.group("dq") or attr.group("sq") or attr.group("bare") or ""
            if value.strip().lower() == default:
                return ""
            return attr.group(0)

        return _ATTR_RE.sub(drop, tag_html)

    return _REDUNDANT_TYPE_RE.sub(strip_attr, html)
