"""Site building functionality for Kindling.

This module sequences a complete build: it loads configuration and data,
prepares the template environments, copies static files, renders every page
and runs the production finishing stages.

Key items:
- BuildOptions: Per-invocation switches (dev mode, image compression).
- BuildResult: What a build produced.
- build_site_async: The build itself.
- build_site: Synchronous entry point used by the CLI and dev server.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any

from . import log
from .asset_processors import StageReport
from .assets import AssetPipeline, copy_public
from .config import SiteConfig, load_config
from .content import Page, PagePipeline, discover_pages, shadowed_collections
from .data import load_data
from .exceptions import BuildError
from .feeds import RobotsGenerator, SitemapGenerator
from .templates import SearchPath, TemplateEnvironments
from .utils import ensure_clean_dir


@dataclass(frozen=True)
class BuildOptions:
    """Switches for a single build.

    Attributes:
        dev_mode: Skip minification and cache-busting for fast rebuilds.
        skip_image_compression: Skip image conversion even if configured.
        out_dir: Output directory override, relative to the project root or
            absolute.
    """

    dev_mode: bool = False
    skip_image_compression: bool = False
    out_dir: Path | None = None


@dataclass(frozen=True)
class SitePaths:
    """Resolved directories of a project."""

    root: Path
    source: Path
    pages: Path
    layouts: Path
    partials: Path
    data: Path
    collections: Path
    public: Path
    output: Path

    @classmethod
    def resolve(
        cls, project_root: Path, config: SiteConfig, out_dir: Path | None = None
    ) -> SitePaths:
        source = (project_root / config.src_dir).resolve()
        output = project_root / (out_dir if out_dir is not None else config.out_dir)
        return cls(
            root=project_root,
            source=source,
            pages=source / "pages",
            layouts=source / "layouts",
            partials=source / "partials",
            data=source / "data",
            collections=source / "collections",
            public=(project_root / config.public_dir).resolve(),
            output=output.resolve(),
        )

    @property
    def search_path(self) -> SearchPath:
        return SearchPath(
            layouts=self.layouts,
            partials=self.partials,
            pages=self.pages,
            source=self.source,
        )


@dataclass
class BuildResult:
    """Result of a site build operation.

    Attributes:
        pages: Every page discovered under the pages root.
        output_dir: Directory where the site was built.
        collections: Data collections exposed to templates.
        asset_map: Original to hashed asset paths, empty unless cache-busting ran.
        reports: Stage reports in the order the stages ran.
        skipped: True when no pages were found and the build stopped early.
    """

    pages: list[Page]
    output_dir: Path
    collections: Mapping[str, Any] = field(default_factory=dict)
    asset_map: dict[str, str] = field(default_factory=dict)
    reports: list[StageReport] = field(default_factory=list)
    skipped: bool = False

    def report(self, name: str) -> StageReport | None:
        """Return the report of the stage called ``name``, if it ran."""
        for report in self.reports:
            if report.name == name:
                return report
        return None

    @property
    def failures(self) -> list[tuple[str, str]]:
        return [failure for report in self.reports for failure in report.failed]


def _discover(pages_dir: Path) -> list[Page]:
    try:
        return discover_pages(pages_dir)
    except OSError as exc:
        raise BuildError(pages_dir, f"Cannot read pages directory: {exc}", exc) from exc


async def build_site_async(
    project_root: Path, options: BuildOptions | None = None
) -> BuildResult:
    """Build the site for a project.

    Args:
        project_root: Root directory of the project.
        options: Build switches; defaults to a production build.

    Returns:
        BuildResult describing the build.

    Raises:
        BuildError: The project root or pages directory cannot be read.
        ConfigError: A config file exists but cannot be read.
    """
    options = options or BuildOptions()
    project_root = Path(project_root)
    if not project_root.is_dir():
        raise BuildError(project_root, "Project directory does not exist")

    config = load_config(project_root)
    paths = SitePaths.resolve(project_root, config, options.out_dir)

    environments = TemplateEnvironments.create(paths.search_path)
    environments.apply_hooks(config)

    loaded = await load_data([paths.data, paths.collections])
    for name in shadowed_collections(loaded):
        log.warning(
            f"Collection {name} is shadowed by the built-in {name} variable; "
            f"use collections.{name} instead"
        )
    collections = MappingProxyType(loaded)

    await asyncio.to_thread(ensure_clean_dir, paths.output)
    result = BuildResult(pages=[], output_dir=paths.output, collections=collections)
    result.reports.append(
        await copy_public(paths.public, paths.output, config.exclude_files)
    )

    assets = AssetPipeline(config, paths.output)
    if not options.dev_mode and not options.skip_image_compression:
        image_report = await assets.compress_images()
        if image_report is not None:
            result.reports.append(image_report)

    pages = await asyncio.to_thread(_discover, paths.pages)
    if not pages:
        log.warning(f"No pages found in {_display(paths.pages, project_root)}.")
        result.skipped = True
        return result
    result.pages = pages

    pipeline = PagePipeline(
        config, paths.pages, paths.output, collections, environments
    )
    page_report = await pipeline.render_all(pages)
    if page_report.failed:
        log.warning(f"{len(page_report.failed)} page(s) failed to render")

    result.reports.append(page_report)

    if not options.dev_mode:
        result.reports.extend(await assets.finish())
        result.asset_map = assets.asset_map

    if RobotsGenerator().write(paths.output, paths.public, config.site_url):
        log.dim("Generated robots.txt")
    if SitemapGenerator().write(paths.output, paths.public, config.site_url):
        log.success("Generated sitemap.xml")

    log.success(
        f"Built {len(page_report.succeeded)} page(s) -> "
        f"{_display(paths.output, project_root)}"
    )
    return result


def build_site(project_root: Path, options: BuildOptions | None = None) -> BuildResult:
    """Build the site synchronously. See :func:`build_site_async`."""
    return asyncio.run(build_site_async(project_root, options))


def _display(path: Path, root: Path) -> str:
    try:
        return path.relative_to(root.resolve()).as_posix()
    except ValueError:
        return str(path)
