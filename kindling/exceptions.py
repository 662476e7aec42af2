"""Exception types raised by Kindling."""

from __future__ import annotations

from pathlib import Path


class KindlingError(Exception):
    """Base class for all Kindling errors."""


class ConfigError(KindlingError):
    """A configuration file exists but cannot be read at all.

    Attributes:
        path: Path to the configuration file.
        message: Human-readable error message.
    """

    def __init__(self, path: Path, message: str):
        self.path = path
        self.message = message
        super().__init__(f"{path}: {message}")


class BuildError(KindlingError):
    """Error during site build with file context.

    Attributes:
        source_path: Path to the file or directory that caused the error.
        message: Human-readable error message.
        original_error: The original exception that was caught.
    """

    def __init__(
        self,
        source_path: Path,
        message: str,
        original_error: Exception | None = None,
    ):
        self.source_path = source_path
        self.message = message
        self.original_error = original_error
        super().__init__(f"{source_path}: {message}")


class RenderError(BuildError):
    """A single page failed to render.

    The page pipeline catches these, logs them and moves on to the next page.
    """
