"""Asset pipeline for Kindling.

This module copies the public directory into the output tree and sequences
the finishing stages from :mod:`kindling.asset_processors` according to the
site configuration.

Key components:
- copy_public: Copy static files, honouring exclusion patterns.
- AssetPipeline: Runs image conversion and the production finishing stages.
"""

from __future__ import annotations

import asyncio
import shutil
from collections.abc import Iterable
from pathlib import Path

from . import log
from .asset_processors import (
    BaseAssetProcessor,
    CacheBuster,
    CSSMinifier,
    HTMLMinifier,
    ImageConverter,
    JSMinifier,
    StageReport,
)
from .config import SiteConfig
from .utils import relative_posix, should_exclude_file, walk_files


def _copy_file(source: Path, target: Path) -> None:
    target.parent.mkdir(parents=True, exist_ok=True)
    shutil.copy2(source, target)


async def copy_public(
    public_dir: Path, output_dir: Path, exclude: Iterable[str] = ()
) -> StageReport:
    """Copy the public directory into the output directory.

    Files matching an exclusion pattern are skipped and reported. A missing
    public directory is not an error.

    Args:
        public_dir: Project public directory.
        output_dir: Build output directory.
        exclude: Exclusion patterns (see ``should_exclude_file``).

    Returns:
        Report listing copied files; excluded files are counted under
        ``excluded``.
    """
    report = StageReport("public")
    patterns = list(exclude)
    files = await asyncio.to_thread(walk_files, public_dir)
    to_copy: list[tuple[Path, str]] = []
    for path in files:
        rel = relative_posix(path, public_dir)
        if should_exclude_file(path, patterns):
            log.dim(f"Skipping excluded file: {rel}")
            report.add("excluded")
            continue
        to_copy.append((path, rel))

    results = await asyncio.gather(
        *(asyncio.to_thread(_copy_file, path, output_dir / rel) for path, rel in to_copy),
        return_exceptions=True,
    )
    for (_, rel), result in zip(to_copy, results):
        if isinstance(result, OSError):
            log.error(f"Failed to copy {rel}: {result}")
            report.failed.append((rel, str(result)))
        elif isinstance(result, BaseException):
            raise result
        else:
            report.succeeded.append(rel)
    return report


class AssetPipeline:
    """Runs the finishing stages over a built output tree.

    Attributes:
        config: Site configuration.
        output_dir: Build output directory.
        reports: Reports of the stages run so far, in order.
        asset_map: Original to hashed asset paths after cache-busting.
    """

    def __init__(self, config: SiteConfig, output_dir: Path):
        self.config = config
        self.output_dir = output_dir
        self.reports: list[StageReport] = []
        self.asset_map: dict[str, str] = {}

    def minifiers(self) -> list[BaseAssetProcessor]:
        """Return the enabled minifiers in the order they run."""
        processors: list[BaseAssetProcessor] = []
        if self.config.minify_css:
            processors.append(CSSMinifier())
        if self.config.minify_js:
            processors.append(JSMinifier())
        if self.config.minify_html:
            processors.append(HTMLMinifier())
        return processors

    async def compress_images(self) -> StageReport | None:
        """Convert images if enabled. Runs before pages are rendered."""
        if not self.config.compress_photos:
            return None
        log.info("Processing images...")
        report = await ImageConverter(self.config.compression_settings).run(
            self.output_dir
        )
        self.reports.append(report)
        return report

    async def finish(self) -> list[StageReport]:
        """Run minification and cache-busting as configured.

        Returns:
            Reports of the stages that ran.
        """
        ran: list[StageReport] = []
        for processor in self.minifiers():
            report = await processor.run(self.output_dir)
            log.success(f"{processor.name.upper()} minified")
            ran.append(report)

        if self.config.cache_bust_assets:
            log.info("Cache-busting assets...")
            self.asset_map, report = await CacheBuster(self.output_dir).run()
            if self.asset_map:
                log.success(f"Cache-busted {len(self.asset_map)} asset(s)")
            else:
                log.warning("No assets found to cache-bust")
            ran.append(report)

        self.reports.extend(ran)
        return ran
