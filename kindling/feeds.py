"""Crawler files for Kindling.

This module generates ``sitemap.xml`` and ``robots.txt`` for a built site.
Both are derived from the output tree rather than the page sources, so the
sitemap lists exactly the HTML files that will be deployed.

Classes:
    FeedGenerator: Base class for generated site files.
    SitemapGenerator: Generates sitemap.xml.
    RobotsGenerator: Generates robots.txt pointing at the sitemap.

Functions:
    generate_sitemap: Sitemap XML for an output directory.
    generate_robots_txt: robots.txt text for a site URL.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path

from .html_utils import escape_html, join_root_url
from .utils import canonical_url_path, format_date, get_ext, relative_posix, walk_files

SITEMAP_NAME = "sitemap.xml"
ROBOTS_NAME = "robots.txt"


def generate_sitemap(output_dir: Path, site_url: str) -> str:
    """Generate sitemap XML for every HTML file in an output directory.

    Args:
        output_dir: Build output directory.
        site_url: Absolute base URL of the site.

    Returns:
        A ``urlset`` document with one entry per page, sorted by URL. The
        root ``index.html`` maps to ``<site_url>/`` and other ``index.html``
        files to their directory URL. Other pages lose their ``.html`` suffix.
    """
    entries = []
    for path in walk_files(output_dir):
        if get_ext(path) != ".html":
            continue
        url_path = canonical_url_path(relative_posix(path, output_dir))
        loc = join_root_url(site_url, url_path)
        modified = datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)
        entries.append((loc, format_date(modified)))
    entries.sort()

    lines = [
        '<?xml version="1.0" encoding="UTF-8"?>',
        '<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">',
    ]
    for loc, lastmod in entries:
        lines.append("  <url>")
        lines.append(f"    <loc>{escape_html(loc)}</loc>")
        lines.append(f"    <lastmod>{lastmod}</lastmod>")
        lines.append("  </url>")
    lines.append("</urlset>")
    return "\n".join(lines) + "\n"


def generate_robots_txt(site_url: str) -> str:
    """Return a permissive robots.txt that points at the sitemap."""
    sitemap_url = join_root_url(site_url, SITEMAP_NAME)
    return f"User-agent: *\nAllow: /\n\nSitemap: {sitemap_url}\n"


class FeedGenerator(ABC):
    """Base class for files generated into the output root.

    A generated file is skipped when the public directory or the output
    already provides one, so user-supplied versions always win.
    """

    @property
    @abstractmethod
    def filename(self) -> str:
        """Return the output filename, e.g. ``"sitemap.xml"``."""
        ...

    @abstractmethod
    def generate(self, output_dir: Path, site_url: str) -> str:
        """Generate the file content."""
        ...

    def write(self, output_dir: Path, public_dir: Path, site_url: str) -> bool:
        """Generate and write the file unless one is already provided.

        Returns:
            True if the file was written, False if skipped.
        """
        if (public_dir / self.filename).exists():
            return False
        target = output_dir / self.filename
        if target.exists():
            return False
        content = self.generate(output_dir, site_url)
        target.write_text(content, encoding="utf-8")
        return True


class SitemapGenerator(FeedGenerator):
    """Generates sitemap.xml following the sitemaps.org protocol."""

    @property
    def filename(self) -> str:
        return SITEMAP_NAME

    def generate(self, output_dir: Path, site_url: str) -> str:
        return generate_sitemap(output_dir, site_url)


class RobotsGenerator(FeedGenerator):
    """Generates robots.txt."""

    @property
    def filename(self) -> str:
        return ROBOTS_NAME

    def generate(self, output_dir: Path, site_url: str) -> str:
        return generate_robots_txt(site_url)
