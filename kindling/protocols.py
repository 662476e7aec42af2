"""Protocol definitions for Kindling.

The page pipeline never talks to a template engine directly. Each engine
(Jinja, Liquid, Mustache) and each plain content type (HTML, Markdown) is
wrapped in an adapter implementing ``TemplateRenderer``, so the pipeline can
dispatch on a page's kind and treat every engine the same way.
"""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from .renderers import PageKind


@runtime_checkable
class TemplateRenderer(Protocol):
    """Uniform rendering capability exposed by every page kind."""

    @property
    @abstractmethod
    def kind(self) -> PageKind:
        """Return the page kind this renderer handles."""
        ...

    @property
    @abstractmethod
    def supports_layouts(self) -> bool:
        """Whether this renderer can render named layout files."""
        ...

    @abstractmethod
    def render_body(self, source: str, context: dict[str, Any]) -> str:
        """Render a page body to HTML.

        Args:
            source: Page body with frontmatter already removed.
            context: Template variables for the page.

        Returns:
            Rendered HTML.
        """
        ...

    @abstractmethod
    def render_layout(self, name: str, context: dict[str, Any]) -> str:
        """Render a named layout file.

        Args:
            name: Layout file name, resolved against the engine search path.
            context: Template variables, including the rendered ``content``.

        Returns:
            Rendered HTML document.

        Raises:
            LayoutNotFoundError: The layout cannot be found on the search path.
        """
        ...
