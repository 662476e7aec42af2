"""Console reporting for Kindling.

Build progress and errors are written with click so that colours degrade
gracefully when output is not a terminal. Errors and warnings go to stderr,
everything else to stdout.
"""

from __future__ import annotations

import click


def error(message: str) -> None:
    """Report a failure. Used for file-scoped errors the build recovers from."""
    click.secho(message, fg="red", err=True)


def warning(message: str) -> None:
    click.secho(message, fg="yellow", err=True)


def success(message: str) -> None:
    click.secho(message, fg="green")


def info(message: str) -> None:
    click.secho(message, fg="cyan")


def dim(message: str) -> None:
    click.secho(message, dim=True)
