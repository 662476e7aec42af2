"""Content renderers for Kindling.

This module contains the implementations of the TemplateRenderer protocol,
one per page kind, and the registry that dispatches to them.

Key items:
- PageKind: Page kind derived once from a file name.
- HTMLRenderer: Passes HTML through unchanged.
- MarkdownRenderer: Renders Markdown to HTML with syntax highlighting.
- JinjaRenderer / LiquidRenderer / MustacheRenderer: Template engine adapters.
- RendererRegistry: Maps page kinds to renderers and applies layouts.
"""

from __future__ import annotations

import enum
from pathlib import Path, PurePath
from typing import Any

import chevron
import jinja2
import liquid
import mistune
from liquid.exceptions import TemplateNotFound as LiquidTemplateNotFound
from markupsafe import Markup

from . import log
from .templates import TemplateEnvironments

# Compound suffixes are checked before single ones.
_COMPOUND_SUFFIXES = {
    ".html.jinja": "jinja",
    ".liquid.html": "liquid",
}
_SUFFIXES = {
    ".html": "html",
    ".htm": "html",
    ".md": "markdown",
    ".markdown": "markdown",
    ".jinja": "jinja",
    ".j2": "jinja",
    ".njk": "jinja",
    ".liquid": "liquid",
    ".mustache": "mustache",
}

# Extension tried for layouts named without one, per default engine.
_DEFAULT_LAYOUT_SUFFIX = {
    "jinja": ".jinja",
    "liquid": ".liquid",
    "mustache": ".mustache",
}


class LayoutNotFoundError(LookupError):
    """A layout name did not resolve to a file on the search path."""


class PageKind(enum.Enum):
    """Kind of a page source file, derived from its extension."""

    HTML = "html"
    MARKDOWN = "markdown"
    JINJA = "jinja"
    LIQUID = "liquid"
    MUSTACHE = "mustache"
    STATIC = "static"

    @classmethod
    def from_path(cls, path: str | PurePath) -> PageKind:
        """Classify a file by name. Unknown extensions are STATIC."""
        name = PurePath(path).name.lower()
        for suffix, value in _COMPOUND_SUFFIXES.items():
            if name.endswith(suffix) and len(name) > len(suffix):
                return cls(value)
        return cls(_SUFFIXES.get(PurePath(name).suffix, "static"))

    @staticmethod
    def source_suffix(path: str | PurePath) -> str:
        """Return the (possibly compound) suffix that identifies the kind."""
        name = PurePath(path).name
        lowered = name.lower()
        for suffix in _COMPOUND_SUFFIXES:
            if lowered.endswith(suffix) and len(lowered) > len(suffix):
                return name[-len(suffix) :]
        return PurePath(name).suffix

    def output_path(self, rel: str) -> str:
        """Rewrite a pages-relative path to its output-relative path."""
        if self is PageKind.STATIC:
            return rel
        suffix = self.source_suffix(rel)
        return rel[: len(rel) - len(suffix)] + ".html"


def markdown_to_html(text: str) -> str:
    """Render Markdown to HTML. Raw HTML in the source is passed through."""
    markdown = mistune.create_markdown(
        renderer=_HighlightRenderer(),
        plugins=["strikethrough", "footnotes", "table", "url"],
    )
    return markdown(text)


class _HighlightRenderer(mistune.HTMLRenderer):
    """Markdown renderer with Pygments highlighting for fenced code blocks."""

    def __init__(self):
        super().__init__(escape=False)

    def block_code(self, code: str, info: str | None = None) -> str:
        """Render a code block with Pygments syntax highlighting.

        Args:
            code: The code content.
            info: Language identifier (e.g., 'python', 'javascript').

        Returns:
            HTML string with highlighted code.
        """
        if info:
            from pygments import highlight
            from pygments.formatters import HtmlFormatter
            from pygments.lexers import get_lexer_by_name
            from pygments.util import ClassNotFound

            try:
                lexer = get_lexer_by_name(info.split()[0], stripall=True)
            except ClassNotFound:
                lexer = None
            if lexer is not None:
                formatter = HtmlFormatter(nowrap=False, cssclass="highlight")
                return highlight(code, lexer, formatter)
        escaped = code.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")
        lang_class = f' class="language-{info.split()[0]}"' if info else ""
        return f"<pre><code{lang_class}>{escaped}</code></pre>\n"


class HTMLRenderer:
    """Passes HTML content through unchanged."""

    kind = PageKind.HTML
    supports_layouts = False

    def render_body(self, source: str, context: dict[str, Any]) -> str:
        return source

    def render_layout(self, name: str, context: dict[str, Any]) -> str:
        raise LayoutNotFoundError(name)


class MarkdownRenderer:
    """Renders Markdown page bodies to HTML."""

    kind = PageKind.MARKDOWN
    supports_layouts = False

    def render_body(self, source: str, context: dict[str, Any]) -> str:
        return markdown_to_html(source)

    def render_layout(self, name: str, context: dict[str, Any]) -> str:
        raise LayoutNotFoundError(name)


class JinjaRenderer:
    """Adapter for the Jinja environment."""

    kind = PageKind.JINJA
    supports_layouts = True

    def __init__(self, env: jinja2.Environment):
        self.env = env

    def render_body(self, source: str, context: dict[str, Any]) -> str:
        return self.env.from_string(source).render(context)

    def render_layout(self, name: str, context: dict[str, Any]) -> str:
        try:
            template = self.env.get_template(name)
        except jinja2.TemplateNotFound as exc:
            # Only a miss on the layout itself; a missing include propagates.
            if exc.name != name:
                raise
            raise LayoutNotFoundError(name) from exc
        # Rendered page HTML stays raw even if a hook turns autoescaping on.
        content = Markup(context.get("content", ""))
        return template.render({**context, "content": content})


class LiquidRenderer:
    """Adapter for the Liquid environment."""

    kind = PageKind.LIQUID
    supports_layouts = True

    def __init__(self, env: liquid.Environment):
        self.env = env

    def render_body(self, source: str, context: dict[str, Any]) -> str:
        return self.env.from_string(source).render(**context)

    def render_layout(self, name: str, context: dict[str, Any]) -> str:
        try:
            template = self.env.get_template(name)
        except LiquidTemplateNotFound as exc:
            raise LayoutNotFoundError(name) from exc
        return template.render(**context)


class MustacheRenderer:
    """Adapter for chevron.

    Partials come from the build's eagerly loaded partial mapping; the
    partials directory is also given to chevron so nested names resolve.
    """

    kind = PageKind.MUSTACHE
    supports_layouts = True

    def __init__(self, environments: TemplateEnvironments):
        self.environments = environments

    @property
    def partials(self) -> dict[str, str]:
        return self.environments.mustache_partials or {}

    def render_body(self, source: str, context: dict[str, Any]) -> str:
        return chevron.render(
            source,
            context,
            partials_path=str(self.environments.search_path.partials),
            partials_dict=self.partials,
        )

    def render_layout(self, name: str, context: dict[str, Any]) -> str:
        path = self.environments.search_path.find(name)
        if path is None:
            raise LayoutNotFoundError(name)
        return self.render_body(path.read_text(encoding="utf-8"), context)


class RendererRegistry:
    """Registry mapping page kinds to renderers.

    Attributes:
        default_engine: Engine used for layouts named without an extension.
    """

    def __init__(self, environments: TemplateEnvironments, default_engine: str = "jinja"):
        self.environments = environments
        self.default_engine = default_engine
        self._renderers: dict[PageKind, Any] = {}
        self.register(HTMLRenderer())
        self.register(MarkdownRenderer())
        self.register(JinjaRenderer(environments.jinja))
        self.register(LiquidRenderer(environments.liquid))
        self.register(MustacheRenderer(environments))

    def register(self, renderer) -> None:
        """Register a renderer for its page kind, replacing any previous one."""
        self._renderers[renderer.kind] = renderer

    def get_renderer(self, kind: PageKind):
        """Return the renderer for a kind, or None for STATIC files."""
        return self._renderers.get(kind)

    def resolve_layout_name(self, layout: str) -> str:
        """Give an extensionless layout name the default engine's suffix."""
        if PurePath(layout).suffix:
            return layout
        suffix = _DEFAULT_LAYOUT_SUFFIX.get(self.default_engine)
        return f"{layout}{suffix}" if suffix else layout

    def layout_kind(self, layout: str) -> PageKind:
        return PageKind.from_path(self.resolve_layout_name(layout))

    def render_with_layout(
        self,
        layout: Any,
        html: str,
        context: dict[str, Any],
        source: Path | None = None,
    ) -> str:
        """Wrap rendered page HTML in its layout.

        The layout is rendered by the engine matching the layout's own
        extension, whatever the page's kind. The layout sees the page context
        plus ``content`` (the rendered HTML), ``frontmatter`` and ``title``.

        Args:
            layout: Layout name from frontmatter, or None.
            html: Rendered page HTML.
            context: Page context.
            source: Page path, for messages.

        Returns:
            The wrapped document, or ``html`` unchanged when there is no
            layout or it cannot be used.
        """
        if not layout or not isinstance(layout, str):
            return html
        name = self.resolve_layout_name(layout)
        renderer = self.get_renderer(PageKind.from_path(name))
        where = f" (in {source})" if source else ""
        if renderer is None or not renderer.supports_layouts:
            log.warning(f"Layout {layout} is not a template{where}; rendering body only.")
            return html
        page = context.get("page") or {}
        site = context.get("site") or {}
        layout_context = {
            **context,
            "frontmatter": page,
            "content": html,
            "title": page.get("title") or site.get("name"),
        }
        try:
            return renderer.render_layout(name, layout_context)
        except LayoutNotFoundError:
            log.warning(f"Layout {layout} not found{where}; rendering body only.")
            return html
