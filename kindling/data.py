"""Data and collection loading for Kindling.

JSON files under the configured data directories become named collections
available to every page template. The collection name is the file's base
name, so ``src/data/nav.json`` is exposed as ``nav``.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from . import log
from .utils import get_ext, relative_posix, walk_files

DATA_EXTENSIONS = (".json",)


def _read_json(path: Path) -> Any:
    with open(path, encoding="utf-8") as f:
        return json.load(f)


async def load_data(data_dirs: Path | Iterable[Path]) -> dict[str, Any]:
    """Load JSON collections from one or more directories.

    Directories are scanned in order and a later directory wins when two
    files share a base name. A file that cannot be read or parsed is
    reported and skipped; it never aborts the load.

    Args:
        data_dirs: Directory or ordered directories to scan. Missing
            directories are skipped silently.

    Returns:
        Mapping of collection name to parsed JSON value.
    """
    dirs = [data_dirs] if isinstance(data_dirs, Path) else list(data_dirs)
    collections: dict[str, Any] = {}
    for data_dir in dirs:
        files = await asyncio.to_thread(walk_files, data_dir)
        candidates = [f for f in files if get_ext(f) in DATA_EXTENSIONS]
        results = await asyncio.gather(
            *(asyncio.to_thread(_read_json, f) for f in candidates),
            return_exceptions=True,
        )
        for path, result in zip(candidates, results):
            if isinstance(result, (OSError, ValueError)):
                log.error(
                    f"Failed to load data {relative_posix(path, data_dir)}: {result}"
                )
                continue
            if isinstance(result, BaseException):
                raise result
            collections[path.stem] = result
    return collections
