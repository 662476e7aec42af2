"""Page discovery and rendering for Kindling.

This module walks the pages tree, turns each file into a Page, renders it
through the renderer matching its kind, wraps it in its layout and writes
the result to the output tree. Pages are independent of each other, so the
whole set is rendered concurrently.

Key items:
- Page: One source file under the pages root.
- discover_pages: Recursive page discovery.
- page_context: Template variables for one page.
- PagePipeline: Renders and writes pages concurrently.
"""

from __future__ import annotations

import asyncio
import shutil
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import jinja2

from . import log
from .asset_processors import StageReport
from .config import SiteConfig
from .exceptions import RenderError
from .extractors import extract_frontmatter, markdown_override
from .renderers import PageKind, RendererRegistry, markdown_to_html
from .templates import TemplateEnvironments
from .utils import normalize_url, relative_posix, to_url_path, walk_files

RESERVED_CONTEXT_KEYS = frozenset({"site", "page", "collections", "is_active", "isActive"})


@dataclass
class Page:
    """A single source file under the pages root.

    Attributes:
        source: Absolute path to the source file.
        rel: Path relative to the pages root, with forward slashes.
        kind: Page kind, derived from the file extension.
        output_rel: Output-relative path (template extensions become .html).
        url: Site URL of the output file.
        frontmatter: Parsed frontmatter; empty for static files.
        body: Source text after frontmatter; empty for static files.
    """

    source: Path
    rel: str
    kind: PageKind
    output_rel: str
    url: str
    frontmatter: dict[str, Any] = field(default_factory=dict)
    body: str = ""

    @classmethod
    def from_path(cls, source: Path, pages_dir: Path) -> Page:
        rel = relative_posix(source, pages_dir)
        kind = PageKind.from_path(source)
        output_rel = kind.output_path(rel)
        return cls(
            source=source,
            rel=rel,
            kind=kind,
            output_rel=output_rel,
            url=to_url_path(output_rel),
        )

    @property
    def layout(self) -> str | None:
        layout = self.frontmatter.get("layout")
        return layout if isinstance(layout, str) and layout else None


def discover_pages(pages_dir: Path) -> list[Page]:
    """Find every page below the pages root, skipping dotfiles."""
    return [Page.from_path(path, pages_dir) for path in walk_files(pages_dir)]


def shadowed_collections(collections: Mapping[str, Any]) -> list[str]:
    """Return collection names hidden by reserved page context keys."""
    return sorted(name for name in collections if name in RESERVED_CONTEXT_KEYS)


def make_is_active(current_url: str) -> Callable[[str], bool]:
    """Build the ``is_active`` helper for a page.

    The helper treats ``/about``, ``/about/`` and ``/about.html`` as the same
    URL.
    """
    current = normalize_url(current_url)

    def is_active(url: str | None) -> bool:
        if not url:
            return False
        return normalize_url(url) == current

    return is_active


def page_context(
    frontmatter: Mapping[str, Any],
    html: str,
    config: SiteConfig,
    rel: str,
    collections: Mapping[str, Any],
    url: str = "/",
) -> dict[str, Any]:
    """Build the template context for a page.

    Collections are bound first and the reserved names after them, so a
    collection called ``site`` or ``page`` is shadowed at the top level. It
    is still reachable through ``collections``.

    Args:
        frontmatter: Page frontmatter.
        html: Page body; raw before rendering, rendered HTML for layouts.
        config: Site configuration.
        rel: Pages-relative source path.
        collections: Loaded data collections.
        url: Page URL.

    Returns:
        Context mapping for template rendering.
    """
    is_active = make_is_active(url)
    return {
        **collections,
        "site": {"name": config.site_name, "url": config.site_url, "config": config},
        "page": {**frontmatter, "content": html, "source": rel, "path": url, "url": url},
        "collections": collections,
        "is_active": is_active,
        "isActive": is_active,
    }


class PagePipeline:
    """Renders pages into the output directory.

    Attributes:
        config: Site configuration.
        pages_dir: Root of the page sources.
        output_dir: Build output directory.
        collections: Read-only data collections.
        environments: Template environments for this build.
        registry: Renderer registry.
    """

    def __init__(
        self,
        config: SiteConfig,
        pages_dir: Path,
        output_dir: Path,
        collections: Mapping[str, Any],
        environments: TemplateEnvironments,
        registry: RendererRegistry | None = None,
    ):
        self.config = config
        self.pages_dir = pages_dir
        self.output_dir = output_dir
        self.collections = collections
        self.environments = environments
        self.registry = registry or RendererRegistry(
            environments, default_engine=config.template_engine
        )

    def _needs_mustache_partials(self, page: Page) -> bool:
        if page.kind is PageKind.MUSTACHE:
            return True
        return page.layout is not None and (
            self.registry.layout_kind(page.layout) is PageKind.MUSTACHE
        )

    def render(self, page: Page) -> str:
        """Render a parsed page to its final HTML. Runs in a worker thread."""
        renderer = self.registry.get_renderer(page.kind)
        if renderer is None:
            raise RenderError(page.source, f"No renderer for {page.kind.value} pages")
        context = page_context(
            page.frontmatter, page.body, self.config, page.rel, self.collections, page.url
        )
        override = markdown_override(page.frontmatter)
        if page.kind is PageKind.MARKDOWN and override is False:
            html = page.body
        else:
            html = renderer.render_body(page.body, context)
            if override and page.kind is not PageKind.MARKDOWN:
                html = markdown_to_html(html)
        context = page_context(
            page.frontmatter, html, self.config, page.rel, self.collections, page.url
        )
        return self.registry.render_with_layout(page.layout, html, context, page.rel)

    def _parse(self, page: Page) -> None:
        with open(page.source, encoding="utf-8", newline="") as f:
            text = f.read()
        if self.config.frontmatter:
            page.frontmatter, page.body = extract_frontmatter(text)
        else:
            page.body = text

    async def process(self, page: Page) -> None:
        """Render one page and write it, or copy it verbatim if static."""
        target = self.output_dir / page.output_rel
        await asyncio.to_thread(target.parent.mkdir, parents=True, exist_ok=True)
        if page.kind is PageKind.STATIC:
            await asyncio.to_thread(shutil.copy2, page.source, target)
            return
        await asyncio.to_thread(self._parse, page)
        if self._needs_mustache_partials(page):
            await self.environments.ensure_mustache_partials()
        rendered = await asyncio.to_thread(self.render, page)
        await asyncio.to_thread(_write_text, target, rendered)

    async def render_all(self, pages: Iterable[Page]) -> StageReport:
        """Render every page concurrently.

        A page that fails is reported and counted; the others still render.
        """
        pages = list(pages)
        report = StageReport("pages")
        results = await asyncio.gather(
            *(self.process(page) for page in pages), return_exceptions=True
        )
        for page, result in zip(pages, results):
            if result is None:
                report.succeeded.append(page.output_rel)
                continue
            if not isinstance(result, Exception):
                raise result
            message = _format_error_message(result)
            log.error(f"Failed to render {page.rel}: {message}")
            report.failed.append((page.rel, message))
        return report


def _write_text(path: Path, text: str) -> None:
    with open(path, "w", encoding="utf-8", newline="") as f:
        f.write(text)


def _format_error_message(exc: BaseException) -> str:
    """Format an exception into a user-friendly error message.

    Args:
        exc: The exception to format.

    Returns:
        A human-readable error message.
    """
    if isinstance(exc, jinja2.TemplateSyntaxError):
        return f"Template syntax error on line {exc.lineno}: {exc.message}"
    if isinstance(exc, jinja2.UndefinedError):
        return f"Undefined variable: {exc}"
    if isinstance(exc, RenderError):
        return exc.message
    return f"{type(exc).__name__}: {exc}"
