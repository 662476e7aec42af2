"""Utility functions for Kindling.

This module contains the pure path and string helpers used throughout the
Kindling codebase, plus the handful of filesystem helpers every build stage
shares.

Key functions:
    to_url_path: Map an output-relative file path to its site URL.
    canonical_url_path: Site URL without the .html suffix, as used in sitemaps.
    normalize_url: Canonicalize a URL for "same page" comparisons.
    slugify: Convert text to a URL slug.
    format_date: Render a date as YYYY-MM-DD in UTC.
    format_bytes: Human-readable byte counts.
    get_ext: Lowercase final file extension.
    walk_files: Recursive file listing that skips dotfiles.
    should_exclude_file: Match a file against exclusion patterns.
    ensure_clean_dir: Ensure a directory exists and is empty.
"""

from __future__ import annotations

import os
import re
import shutil
from collections.abc import Iterable
from datetime import date, datetime, timezone
from pathlib import Path

_SLUG_STRIP_RE = re.compile(r"[^\w\s-]", re.ASCII)
_SLUG_COLLAPSE_RE = re.compile(r"[\s_-]+", re.ASCII)

_BYTE_UNITS = ("B", "KB", "MB", "GB")


def to_url_path(output_rel: str | os.PathLike) -> str:
    """Convert an output-relative file path to its URL path.

    Args:
        output_rel: Path relative to the output directory, e.g. ``blog/index.html``.

    Returns:
        URL path with a leading slash. ``index.html`` files map to their
        directory URL and the site root is ``/``.

    Examples:
        >>> to_url_path("index.html")
        '/'

        >>> to_url_path("blog\\\\index.html")
        '/blog'

        >>> to_url_path("about.html")
        '/about.html'
    """
    path = "/" + os.fspath(output_rel).replace("\\", "/")
    if path == "/index.html" or path.endswith("/index.html"):
        path = path[: -len("index.html")]
    if path != "/" and path.endswith("/"):
        path = path[:-1]
    return path or "/"


def canonical_url_path(output_rel: str | os.PathLike) -> str:
    """Return the public URL of an output file, without its ``.html`` suffix.

    Examples:
        >>> canonical_url_path("about.html")
        '/about'

        >>> canonical_url_path("blog/index.html")
        '/blog'
    """
    path = to_url_path(output_rel)
    if path != "/" and path.endswith(".html"):
        path = path[: -len(".html")]
    return path


def normalize_url(url: str | None) -> str:
    """Normalize a URL for comparison.

    Trailing slashes and ``.html`` suffixes are dropped so that ``/about``,
    ``/about/`` and ``/about.html`` all compare equal.

    Args:
        url: URL path to normalize. Empty or missing values mean the site root.

    Returns:
        Normalized URL path, always starting with ``/``.
    """
    if not url:
        return "/"
    normalized = url.strip()
    if not normalized.startswith("/"):
        normalized = "/" + normalized
    while normalized != "/":
        if normalized.endswith("/"):
            normalized = normalized[:-1]
        elif normalized.endswith(".html"):
            normalized = normalized[: -len(".html")]
        else:
            break
    return normalized or "/"


def slugify(text: str) -> str:
    """Convert text to a URL slug.

    Args:
        text: Arbitrary text, e.g. a page title.

    Returns:
        Lowercase slug made of word characters separated by single hyphens.

    Examples:
        >>> slugify("  Hello World  ")
        'hello-world'

        >>> slugify("snake_case -- and more!")
        'snake-case-and-more'
    """
    slug = _SLUG_STRIP_RE.sub("", text.lower().strip())
    slug = _SLUG_COLLAPSE_RE.sub("-", slug)
    return slug.strip("-")


def format_date(value: date | datetime) -> str:
    """Format a date as ``YYYY-MM-DD`` in UTC.

    Naive datetimes are taken to already be in UTC.
    """
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.strftime("%Y-%m-%d")
    return value.isoformat()


def format_bytes(size: float) -> str:
    """Format a byte count as a human-readable string.

    Args:
        size: Number of bytes. Negative values keep their sign.

    Returns:
        String such as ``"0 B"``, ``"1 KB"`` or ``"1.5 KB"``.
    """
    if size == 0:
        return "0 B"
    sign = "-" if size < 0 else ""
    value = float(abs(size))
    index = 0
    while value >= 1024 and index < len(_BYTE_UNITS) - 1:
        value /= 1024
        index += 1
    number = f"{round(value, 2):.2f}".rstrip("0").rstrip(".")
    return f"{sign}{number} {_BYTE_UNITS[index]}"


def get_ext(path: str | os.PathLike) -> str:
    """Return the lowercase final extension of a path, including the dot."""
    return Path(path).suffix.lower()


def walk_files(root: Path) -> list[Path]:
    """Recursively list files below a directory.

    Entries whose name starts with a dot are skipped, and so is everything
    inside a skipped directory.

    Args:
        root: Directory to walk.

    Returns:
        Sorted list of file paths. Empty if the directory does not exist.
    """
    results: list[Path] = []
    if not root.is_dir():
        return results
    with os.scandir(root) as entries:
        for entry in sorted(entries, key=lambda e: e.name):
            if entry.name.startswith("."):
                continue
            full = Path(entry.path)
            if entry.is_dir():
                results.extend(walk_files(full))
            else:
                results.append(full)
    return results


def _wildcard_to_regex(pattern: str) -> re.Pattern[str]:
    escaped = re.escape(pattern).replace(r"\*", ".*").replace(r"\?", ".")
    return re.compile(f"^{escaped}$")


def should_exclude_file(path: str | os.PathLike, patterns: Iterable[str] | None) -> bool:
    """Check whether a file matches any exclusion pattern.

    Matching is case-insensitive and looks at the file name only. Supported
    pattern forms:

    - ``.pdf`` and ``*.pdf`` match by extension.
    - ``notes.txt`` matches that exact file name.
    - ``draft-*`` or ``img?.png`` are wildcard matches.

    Args:
        path: File path to test.
        patterns: Exclusion patterns from the site configuration.

    Returns:
        True if the file should not be copied to the output.
    """
    if not patterns:
        return False
    name = Path(path).name.lower()
    ext = get_ext(path)
    for pattern in patterns:
        normalized = pattern.lower()
        if normalized.startswith("."):
            if ext == normalized:
                return True
            continue
        if normalized.startswith("*.") and ext == normalized[1:]:
            return True
        if name == normalized:
            return True
        if ("*" in normalized or "?" in normalized) and _wildcard_to_regex(
            normalized
        ).match(name):
            return True
    return False


def ensure_clean_dir(path: Path) -> None:
    """Ensure a directory exists and is empty.

    If the directory exists, removes all contents. Creates the
    directory if it doesn't exist.

    Args:
        path: Directory path to clean or create.
    """
    if path.exists():
        shutil.rmtree(str(path), ignore_errors=True)
        if path.exists():
            # Fallback for stubborn directories
            for item in path.rglob("*"):
                if item.is_file():
                    item.unlink()
            for item in sorted(
                [p for p in path.rglob("*") if p.is_dir()], reverse=True
            ):
                item.rmdir()
            path.rmdir()
    path.mkdir(parents=True, exist_ok=True)


def relative_posix(path: Path, root: Path) -> str:
    """Return ``path`` relative to ``root`` with forward slashes."""
    return path.relative_to(root).as_posix()
