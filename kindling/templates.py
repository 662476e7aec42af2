"""Template engine environments for Kindling.

This module builds the per-build environments for the three template
engines and loads Mustache partials. Environments are created once at the
start of a build, handed to any user hooks, and are then only read while
pages render concurrently.

Key items:
- SearchPath: The four roots every template lookup resolves against.
- create_jinja_env / create_liquid_env: Engine factories.
- load_mustache_partials: Read partial files into a name -> text mapping.
- TemplateEnvironments: The environments for one build.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import liquid
from jinja2 import Environment, FileSystemLoader

from . import log
from .config import SiteConfig
from .utils import get_ext, normalize_url, walk_files

MUSTACHE_EXTENSION = ".mustache"


@dataclass(frozen=True)
class SearchPath:
    """Template lookup roots, in priority order."""

    layouts: Path
    partials: Path
    pages: Path
    source: Path

    @property
    def roots(self) -> list[Path]:
        return [self.layouts, self.partials, self.pages, self.source]

    def find(self, name: str) -> Path | None:
        """Return the first existing file called ``name`` under the roots."""
        for root in self.roots:
            candidate = root / name
            if candidate.is_file():
                return candidate
        return None


def is_active(url: str | None, current: str | None) -> bool:
    """Template filter: is ``url`` the page at ``current``?

    Usage: ``{{ item.url | is_active(page.path) }}``.
    """
    if not url or not current:
        return False
    return normalize_url(url) == normalize_url(current)


def create_jinja_env(search_path: SearchPath) -> Environment:
    """Create the Jinja environment.

    Autoescaping is off because page bodies and layouts produce HTML and
    receive already-rendered HTML as ``content``.
    """
    env = Environment(
        loader=FileSystemLoader([str(p) for p in search_path.roots]),
        autoescape=False,
        keep_trailing_newline=True,
    )
    env.filters["is_active"] = is_active
    env.filters["isActive"] = is_active
    return env


def create_liquid_env(search_path: SearchPath) -> liquid.Environment:
    """Create the Liquid environment.

    Includes and layouts without an extension resolve to ``.liquid`` files.
    """
    env = liquid.Environment(
        loader=liquid.FileExtensionLoader(
            [str(p) for p in search_path.roots], ext=".liquid"
        ),
    )
    env.add_filter("is_active", is_active)
    env.add_filter("isActive", is_active)
    return env


def load_mustache_partials(partials_dir: Path) -> dict[str, str]:
    """Load every Mustache partial below a directory.

    Args:
        partials_dir: Directory containing ``.mustache`` partials.

    Returns:
        Mapping of partial name (file stem) to template text.
    """
    partials: dict[str, str] = {}
    for path in walk_files(partials_dir):
        if get_ext(path) != MUSTACHE_EXTENSION:
            continue
        try:
            partials[path.stem] = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            log.warning(f"Warning: Failed to load Mustache partial {path.name}: {exc}")
    return partials


@dataclass
class TemplateEnvironments:
    """Template environments for a single build.

    Attributes:
        search_path: Lookup roots shared by all engines.
        jinja: Jinja environment.
        liquid: Liquid environment.
        mustache_partials: Partials loaded for this build, or None until a
            Mustache page or layout first needs them.
    """

    search_path: SearchPath
    jinja: Environment
    liquid: liquid.Environment
    mustache_partials: dict[str, str] | None = None
    _partials_lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    @classmethod
    def create(cls, search_path: SearchPath) -> TemplateEnvironments:
        return cls(
            search_path=search_path,
            jinja=create_jinja_env(search_path),
            liquid=create_liquid_env(search_path),
        )

    def apply_hooks(self, config: SiteConfig) -> list[str]:
        """Run user hooks that extend the environments.

        A failing hook is reported and skipped.

        Returns:
            Names of the hooks that ran successfully.
        """
        applied: list[str] = []
        targets: dict[str, Any] = {"jinja_env": self.jinja, "liquid_env": self.liquid}
        for name, env in targets.items():
            hook = config.hook(name)
            if hook is None:
                continue
            try:
                hook(env)
            except Exception as exc:
                log.error(f"Failed to apply {name} hook: {exc}")
                continue
            applied.append(name)
        return applied

    async def ensure_mustache_partials(self) -> dict[str, str]:
        """Load Mustache partials once for this build and return them."""
        async with self._partials_lock:
            if self.mustache_partials is None:
                self.mustache_partials = await asyncio.to_thread(
                    load_mustache_partials, self.search_path.partials
                )
        return self.mustache_partials
