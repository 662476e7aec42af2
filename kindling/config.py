"""Site configuration for Kindling.

Configuration is read once per build and passed explicitly to every
component; nothing here is process-global. Values come from three layers,
later layers winning key by key:

1. ``DEFAULT_CONFIG`` below.
2. ``kindling.yaml`` in the project root.
3. ``kindling_config.py`` in the project root, which must define a ``CONFIG``
   mapping. This form exists so that hooks (plain Python callables) can be
   configured.

Keys may be written in snake_case or camelCase. Nested mappings
(``compression_settings``, ``integrations``, ``hooks``) are merged per key, so a
partial override never leaves a nested value undefined.
"""

from __future__ import annotations

import copy
import functools
import importlib.util
import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from . import log
from .exceptions import ConfigError

YAML_CONFIG_NAME = "kindling.yaml"
PYTHON_CONFIG_NAME = "kindling_config.py"

DEFAULT_CONFIG: dict[str, Any] = {
    "site_name": "Kindling",
    "site_url": "https://example.com",
    "src_dir": "src",
    "out_dir": "dist",
    "public_dir": "public",
    "template_engine": "jinja",
    "frontmatter": True,
    "minify_css": False,
    "minify_html": False,
    "minify_js": False,
    "cache_bust_assets": False,
    "exclude_files": [],
    "compress_photos": False,
    "compression_settings": {
        "quality": 80,
        "formats": [".webp"],
        "input_formats": [".jpg", ".jpeg", ".png"],
        "preserve_original": True,
    },
    "port": 4173,
    "integrations": {"jinja": True, "liquid": False, "mustache": False},
    "hooks": {},
}

_NESTED_KEYS = ("compression_settings", "integrations", "hooks")
_CAMEL_RE = re.compile(r"([a-z0-9])([A-Z])")


def _snake(key: str) -> str:
    return _CAMEL_RE.sub(r"\1_\2", key).lower()


def _normalize_keys(mapping: Mapping[str, Any]) -> dict[str, Any]:
    """Convert camelCase keys to snake_case, one level deep for nested sections."""
    normalized: dict[str, Any] = {}
    for key, value in mapping.items():
        name = _snake(str(key))
        if name in ("compression_settings", "hooks") and isinstance(value, Mapping):
            value = {_snake(str(k)): v for k, v in value.items()}
        normalized[name] = value
    return normalized


def merge_config(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    """Merge an override mapping over a base configuration mapping.

    Args:
        base: Complete configuration mapping (snake_case keys).
        override: Partial user mapping (snake_case or camelCase keys).

    Returns:
        A new mapping; nested sections are merged per key.
    """
    merged = copy.deepcopy(dict(base))
    for key, value in _normalize_keys(override).items():
        if key not in DEFAULT_CONFIG:
            log.warning(f"Ignoring unknown config key: {key}")
            continue
        if key in _NESTED_KEYS:
            if not isinstance(value, Mapping):
                log.warning(f"Config key {key} must be a mapping; keeping defaults")
                continue
            section = dict(merged.get(key) or {})
            section.update(value)
            merged[key] = section
        else:
            merged[key] = value
    return merged


@dataclass(frozen=True)
class CompressionSettings:
    """Image conversion settings.

    Attributes:
        quality: Encoder quality, 1-100.
        formats: Output extensions to generate, e.g. ``(".webp", ".avif")``.
        input_formats: Extensions of images that should be converted.
        preserve_original: Keep the source image next to its conversions.
    """

    quality: int = 80
    formats: tuple[str, ...] = (".webp",)
    input_formats: tuple[str, ...] = (".jpg", ".jpeg", ".png")
    preserve_original: bool = True


@dataclass(frozen=True)
class SiteConfig:
    """Immutable configuration for a single build."""

    site_name: str = "Kindling"
    site_url: str = "https://example.com"
    src_dir: str = "src"
    out_dir: str = "dist"
    public_dir: str = "public"
    template_engine: str = "jinja"
    frontmatter: bool = True
    minify_css: bool = False
    minify_html: bool = False
    minify_js: bool = False
    cache_bust_assets: bool = False
    exclude_files: tuple[str, ...] = ()
    compress_photos: bool = False
    compression_settings: CompressionSettings = field(default_factory=CompressionSettings)
    port: int = 4173
    integrations: Mapping[str, bool] = field(
        default_factory=lambda: dict(DEFAULT_CONFIG["integrations"])
    )
    hooks: Mapping[str, Callable[[Any], None]] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, overrides: Mapping[str, Any] | None = None) -> SiteConfig:
        """Build a config from defaults plus an optional override mapping."""
        values = merge_config(DEFAULT_CONFIG, overrides or {})
        return cls._from_merged(values)

    @classmethod
    def _from_merged(cls, values: Mapping[str, Any]) -> SiteConfig:
        """Convert a merged mapping, replacing each invalid value by its default."""
        field_value = functools.partial(_field_value, values, DEFAULT_CONFIG, "")
        settings = values.get("compression_settings") or {}
        setting = functools.partial(
            _field_value,
            settings,
            DEFAULT_CONFIG["compression_settings"],
            "compression_settings.",
        )
        return cls(
            site_name=field_value("site_name", str),
            site_url=field_value("site_url", str),
            src_dir=field_value("src_dir", str),
            out_dir=field_value("out_dir", str),
            public_dir=field_value("public_dir", str),
            template_engine=field_value("template_engine", str),
            frontmatter=field_value("frontmatter", bool),
            minify_css=field_value("minify_css", bool),
            minify_html=field_value("minify_html", bool),
            minify_js=field_value("minify_js", bool),
            cache_bust_assets=field_value("cache_bust_assets", bool),
            exclude_files=field_value("exclude_files", _as_patterns),
            compress_photos=field_value("compress_photos", bool),
            compression_settings=CompressionSettings(
                quality=setting("quality", int),
                formats=setting("formats", _as_extensions),
                input_formats=setting("input_formats", _as_extensions),
                preserve_original=setting("preserve_original", bool),
            ),
            port=field_value("port", int),
            integrations=field_value(
                "integrations", lambda v: {k: bool(x) for k, x in v.items()}
            ),
            hooks=field_value(
                "hooks", lambda v: {k: h for k, h in v.items() if callable(h)}
            ),
        )

    def hook(self, name: str) -> Callable[[Any], None] | None:
        """Return the configured environment hook named ``name``, if any."""
        return self.hooks.get(name)


def _as_patterns(value: Any) -> tuple[str, ...]:
    if not value:
        return ()
    if isinstance(value, str):
        return (value,)
    return tuple(str(v) for v in value)


def _as_extension(value: str) -> str:
    ext = str(value).lower()
    return ext if ext.startswith(".") else f".{ext}"


def _as_extensions(values: Any) -> tuple[str, ...]:
    if isinstance(values, str):
        values = [values]
    return tuple(_as_extension(v) for v in values)


def _field_value(
    values: Mapping[str, Any],
    defaults: Mapping[str, Any],
    prefix: str,
    key: str,
    convert: Callable[[Any], Any],
) -> Any:
    """Convert one config value, falling back to its default if it is invalid."""
    try:
        return convert(values[key])
    except (TypeError, ValueError, KeyError, AttributeError) as exc:
        log.error(f"Invalid config value for {prefix}{key} ({exc}); using default")
        return convert(defaults[key])


def _load_yaml_overrides(path: Path) -> dict[str, Any]:
    try:
        with open(path, encoding="utf-8") as f:
            loaded = yaml.safe_load(f) or {}
    except yaml.YAMLError as exc:
        log.error(f"Failed to load config {path.name}: {exc}")
        return {}
    except OSError as exc:
        raise ConfigError(path, str(exc)) from exc
    if not isinstance(loaded, dict):
        log.error(f"Failed to load config {path.name}: expected a mapping")
        return {}
    return loaded


def _load_python_overrides(path: Path) -> dict[str, Any]:
    spec = importlib.util.spec_from_file_location("kindling_user_config", path)
    if spec is None or spec.loader is None:
        raise ConfigError(path, "cannot be imported")
    module = importlib.util.module_from_spec(spec)
    try:
        spec.loader.exec_module(module)
    except OSError as exc:
        raise ConfigError(path, str(exc)) from exc
    except Exception as exc:
        log.error(f"Failed to load config {path.name}: {exc}")
        return {}
    loaded = getattr(module, "CONFIG", None)
    if not isinstance(loaded, Mapping):
        log.error(f"Failed to load config {path.name}: CONFIG mapping not found")
        return {}
    return dict(loaded)


def load_config(project_root: Path) -> SiteConfig:
    """Load site configuration for a project.

    Args:
        project_root: Root directory of the project.

    Returns:
        SiteConfig with defaults applied. Malformed config files are reported
        and ignored; an invalid value falls back to its own default only.

    Raises:
        ConfigError: A config file exists but could not be read.
    """
    values = copy.deepcopy(DEFAULT_CONFIG)
    yaml_path = project_root / YAML_CONFIG_NAME
    if yaml_path.exists():
        values = merge_config(values, _load_yaml_overrides(yaml_path))
    python_path = project_root / PYTHON_CONFIG_NAME
    if python_path.exists():
        values = merge_config(values, _load_python_overrides(python_path))
    return SiteConfig._from_merged(values)
