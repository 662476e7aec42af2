"""Asset processors for Kindling.

This module contains the per-file finishing steps run over a built output
tree. Each processor handles a single type of asset and rewrites files in
place.

Key classes:
- StageReport: Per-stage tally of processed and failed files.
- ImageConverter: Writes WebP/AVIF/JPEG/PNG siblings of images.
- CSSMinifier / JSMinifier / HTMLMinifier: In-place minification.
- CacheBuster: Content-hash renaming plus HTML reference rewriting.

Processors never raise for a single bad file: the failure is reported and
recorded in the stage report, and the rest of the batch carries on.
"""

from __future__ import annotations

import asyncio
import hashlib
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path

import htmlmin
from PIL import Image
from rcssmin import cssmin
from rjsmin import jsmin

from . import log
from .config import CompressionSettings
from .html_utils import rewrite_asset_references, strip_redundant_type_attributes
from .utils import format_bytes, get_ext, relative_posix, walk_files

HASH_LENGTH = 10
_HASHED_STEM_RE = re.compile(rf"-[0-9a-f]{{{HASH_LENGTH}}}$")

# Pillow save format and options per output extension.
_IMAGE_FORMATS = {
    ".webp": "WEBP",
    ".avif": "AVIF",
    ".jpg": "JPEG",
    ".jpeg": "JPEG",
    ".png": "PNG",
}


@dataclass
class StageReport:
    """Outcome of one pipeline stage.

    Attributes:
        name: Stage name, e.g. ``"css"`` or ``"cache-bust"``.
        succeeded: Output-relative paths processed successfully.
        failed: ``(path, message)`` pairs for files that were skipped.
        counters: Stage-specific totals such as bytes saved.
    """

    name: str
    succeeded: list[str] = field(default_factory=list)
    failed: list[tuple[str, str]] = field(default_factory=list)
    counters: dict[str, int] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed

    def add(self, counter: str, amount: int = 1) -> None:
        self.counters[counter] = self.counters.get(counter, 0) + amount


class BaseAssetProcessor(ABC):
    """Base class for in-place asset processors.

    Subclasses declare which files they handle and how to transform one
    file. ``run`` applies the processor to every matching file of an
    output tree concurrently.
    """

    name = "asset"

    @abstractmethod
    def can_process(self, path: Path) -> bool:
        """Check if this processor can handle the given file."""
        ...

    @abstractmethod
    def process(self, path: Path) -> None:
        """Process a file in place. Raises on failure."""
        ...

    def describe_failure(self, rel: str, exc: Exception) -> str:
        return f"Failed to process {rel}: {exc}"

    async def run(self, output_dir: Path) -> StageReport:
        """Process every matching file below ``output_dir``."""
        report = StageReport(self.name)
        files = await asyncio.to_thread(walk_files, output_dir)
        targets = [f for f in files if self.can_process(f)]
        results = await asyncio.gather(
            *(asyncio.to_thread(self.process, f) for f in targets),
            return_exceptions=True,
        )
        for path, result in zip(targets, results):
            rel = relative_posix(path, output_dir)
            if isinstance(result, Exception):
                log.error(self.describe_failure(rel, result))
                report.failed.append((rel, str(result)))
            elif isinstance(result, BaseException):
                raise result
            else:
                report.succeeded.append(rel)
        return report


class _TextMinifier(BaseAssetProcessor):
    extension = ""

    def can_process(self, path: Path) -> bool:
        return get_ext(path) == self.extension

    @abstractmethod
    def minify(self, text: str) -> str:
        ...

    def process(self, path: Path) -> None:
        with open(path, encoding="utf-8", newline="") as f:
            text = f.read()
        minified = self.minify(text)
        with open(path, "w", encoding="utf-8", newline="") as f:
            f.write(minified)

    def describe_failure(self, rel: str, exc: Exception) -> str:
        return f"Failed to minify {self.name.upper()} {rel}: {exc}"


class CSSMinifier(_TextMinifier):
    """Strips comments and whitespace from stylesheets using rcssmin."""

    name = "css"
    extension = ".css"

    def minify(self, text: str) -> str:
        return cssmin(text)


class JSMinifier(_TextMinifier):
    """Minifies JavaScript files using rjsmin."""

    name = "js"
    extension = ".js"

    def minify(self, text: str) -> str:
        return jsmin(text)


class HTMLMinifier(_TextMinifier):
    """Minifies HTML documents using htmlmin.

    Comments are removed and runs of whitespace collapse to a single space,
    so inline elements split across lines keep their separating space. The
    contents of ``script``, ``style``, ``pre`` and ``textarea`` elements are
    kept verbatim, and attribute quotes are kept so later stages can still
    find asset references.
    """

    name = "html"
    extension = ".html"
    preserved_tags = ("pre", "textarea", "script", "style")

    def minify(self, text: str) -> str:
        minified = htmlmin.minify(
            text,
            remove_comments=True,
            reduce_boolean_attributes=True,
            remove_optional_attribute_quotes=False,
            convert_charrefs=False,
            pre_tags=self.preserved_tags,
        )
        return strip_redundant_type_attributes(minified)


class ImageConverter(BaseAssetProcessor):
    """Converts images to the configured formats using Pillow.

    Each configured output format is written next to the source image. A
    format that fails is reported and skipped; the others are still
    written. When ``preserve_original`` is off, the source image is deleted
    once at least one conversion succeeded. A conversion never overwrites a
    file already in the output tree, and two sources never write the same
    target.
    """

    name = "images"

    def __init__(self, settings: CompressionSettings):
        self.settings = settings

    def can_process(self, path: Path) -> bool:
        return get_ext(path) in self.settings.input_formats

    def plan(
        self, sources: list[Path], existing: set[Path]
    ) -> dict[Path, tuple[str, ...]]:
        """Choose the output formats each source image may write.

        A conversion is skipped when its target file already exists in the
        output tree or another source already claims it, e.g. ``photo.jpg``
        and ``photo.png`` both wanting ``photo.webp``. Sources are claimed in
        path order.

        Args:
            sources: Images to convert.
            existing: Every file present in the output tree.

        Returns:
            Mapping of source path to the formats it should write.
        """
        claimed: set[Path] = set()
        planned: dict[Path, tuple[str, ...]] = {}
        for path in sorted(sources):
            formats: list[str] = []
            for fmt in self.settings.formats:
                target = path.with_suffix(fmt)
                if fmt not in _IMAGE_FORMATS or target == path:
                    continue
                if target in existing or target in claimed:
                    log.warning(
                        f"Skipping {path.name} -> {fmt}: {target.name} already exists"
                    )
                    continue
                claimed.add(target)
                formats.append(fmt)
            planned[path] = tuple(formats)
        return planned

    def convert(
        self, path: Path, formats: tuple[str, ...] | None = None
    ) -> list[tuple[Path, int]]:
        """Write conversions of one image.

        Args:
            path: Source image.
            formats: Output extensions to write; defaults to all configured.

        Returns:
            ``(path, size)`` for every file written.
        """
        if formats is None:
            formats = self.settings.formats
        written: list[tuple[Path, int]] = []
        with Image.open(path) as img:
            img.load()
            for fmt in formats:
                pil_format = _IMAGE_FORMATS.get(fmt)
                target = path.with_suffix(fmt)
                if pil_format is None or target == path:
                    continue
                try:
                    converted = img
                    if pil_format == "JPEG" and img.mode not in ("RGB", "L"):
                        converted = img.convert("RGB")
                    options = {"quality": self.settings.quality}
                    if pil_format == "PNG":
                        options = {"optimize": True}
                    converted.save(target, format=pil_format, **options)
                except (OSError, ValueError, KeyError) as exc:
                    log.error(f"Failed to convert {path.name} to {fmt}: {exc}")
                    continue
                written.append((target, target.stat().st_size))
        return written

    def process(self, path: Path) -> None:
        self.convert(path)

    async def run(self, output_dir: Path) -> StageReport:
        report = StageReport(self.name)
        files = await asyncio.to_thread(walk_files, output_dir)
        targets = [f for f in files if self.can_process(f)]
        if not targets:
            log.dim("No images found to process")
            return report
        planned = self.plan(targets, set(files))

        async def convert_one(path: Path) -> tuple[int, list[tuple[Path, int]]]:
            original_size = (await asyncio.to_thread(path.stat)).st_size
            written = await asyncio.to_thread(self.convert, path, planned[path])
            if written and not self.settings.preserve_original:
                await asyncio.to_thread(path.unlink, missing_ok=True)
            return original_size, written

        results = await asyncio.gather(
            *(convert_one(path) for path in targets), return_exceptions=True
        )
        original_total = 0
        converted_total = 0
        for path, result in zip(targets, results):
            rel = relative_posix(path, output_dir)
            if isinstance(result, Exception):
                log.error(f"Failed to convert {rel}: {result}")
                report.failed.append((rel, str(result)))
                continue
            if isinstance(result, BaseException):
                raise result
            original_size, written = result
            original_total += original_size
            if not written:
                continue
            formats = ", ".join(get_ext(p)[1:] for p, _ in written)
            log.dim(f"  {rel} -> {formats}")
            report.succeeded.append(rel)
            report.add("generated", len(written))
            converted_total += sum(size for _, size in written)
        report.counters["original_bytes"] = original_total
        report.counters["converted_bytes"] = converted_total
        report.counters["saved_bytes"] = original_total - converted_total
        log.success(f"Generated {report.counters.get('generated', 0)} image(s)")
        if not self.settings.preserve_original and original_total:
            percent = report.counters["saved_bytes"] / original_total * 100
            log.success(
                f"  Saved {format_bytes(report.counters['saved_bytes'])} "
                f"({percent:.1f}% reduction)"
            )
        return report


def content_hash(data: bytes) -> str:
    """Return the cache-busting hash for file contents."""
    return hashlib.sha256(data).hexdigest()[:HASH_LENGTH]


def hashed_name(path: Path, digest: str) -> str:
    """Return ``<stem>-<digest><ext>`` for a file path."""
    return f"{path.stem}-{digest}{path.suffix}"


def is_hashed(path: Path) -> bool:
    """Whether a file name already carries a cache-busting hash."""
    return bool(_HASHED_STEM_RE.search(path.stem))


class CacheBuster:
    """Renames stylesheets and scripts after their content hash.

    All renames finish before any HTML is rewritten, because rewriting needs
    the complete original-to-hashed mapping. Files that already carry a hash
    are left alone, so running the stage again over its own output changes
    nothing.
    """

    name = "cache-bust"
    extensions = (".css", ".js")

    def __init__(self, output_dir: Path):
        self.output_dir = output_dir

    def _rename(self, path: Path) -> tuple[str, str]:
        digest = content_hash(path.read_bytes())
        target = path.with_name(hashed_name(path, digest))
        path.replace(target)
        return (
            relative_posix(path, self.output_dir),
            relative_posix(target, self.output_dir),
        )

    def _rewrite(self, path: Path, asset_map: dict[str, str]) -> bool:
        with open(path, encoding="utf-8", newline="") as f:
            html = f.read()
        rewritten = rewrite_asset_references(html, asset_map)
        if rewritten is html:
            return False
        with open(path, "w", encoding="utf-8", newline="") as f:
            f.write(rewritten)
        return True

    async def run(self) -> tuple[dict[str, str], StageReport]:
        """Hash, rename and rewrite references.

        Returns:
            The asset map (original to hashed output-relative path) and the
            stage report.
        """
        report = StageReport(self.name)
        files = await asyncio.to_thread(walk_files, self.output_dir)
        assets = [
            f for f in files if get_ext(f) in self.extensions and not is_hashed(f)
        ]
        asset_map: dict[str, str] = {}
        renamed = await asyncio.gather(
            *(asyncio.to_thread(self._rename, f) for f in assets),
            return_exceptions=True,
        )
        for path, result in zip(assets, renamed):
            rel = relative_posix(path, self.output_dir)
            if isinstance(result, OSError):
                log.error(f"Failed to cache-bust {rel}: {result}")
                report.failed.append((rel, str(result)))
                continue
            if isinstance(result, BaseException):
                raise result
            original, hashed = result
            asset_map[original] = hashed
            report.succeeded.append(original)
            log.dim(f"  {original} -> {hashed}")

        html_files = [f for f in files if get_ext(f) == ".html"]
        rewritten = await asyncio.gather(
            *(asyncio.to_thread(self._rewrite, f, asset_map) for f in html_files),
            return_exceptions=True,
        )
        for path, result in zip(html_files, rewritten):
            rel = relative_posix(path, self.output_dir)
            if isinstance(result, (OSError, ValueError)):
                log.error(f"Failed to update asset references in {rel}: {result}")
                report.failed.append((rel, str(result)))
            elif isinstance(result, BaseException):
                raise result
            elif result:
                report.add("html_rewritten")
        return asset_map, report
