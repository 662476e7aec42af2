"""Kindling static site generator.

This package builds a deployable static site from a source tree of pages,
layouts, partials and JSON data files. Pages may be plain HTML, Markdown, or
Jinja, Liquid and Mustache templates; layouts may be authored in any of the
template engines independently of the page that uses them.

The main entry point is the CLI module, which provides commands for building
sites, running the development server with watch-and-rebuild, and previewing
production output.

Architecture:
- Renderer adapters (renderers.py) hide each template engine behind one protocol.
- The page pipeline (content.py) renders every page concurrently with asyncio.
- The asset pipeline (assets.py) finishes the output tree: images, minification,
  cache-busting and sitemap generation.
- The build orchestrator (build.py) sequences all of the above for one build.
"""

__all__ = ["__version__"]
__version__ = "0.1.0"
