"""Command-line interface for Kindling.

This module defines the CLI commands using Click framework.

Commands:
- build: Build the site into the output directory.
- dev: Build, watch sources and serve with automatic rebuilds.
- serve: Serve the built site (building first if needed).
- preview: Production build, then serve it.
- clean: Remove the output directory.
"""

from __future__ import annotations

import shutil
from pathlib import Path

import click

from . import __version__
from .build import BuildOptions, BuildResult, build_site
from .config import load_config
from .exceptions import BuildError, ConfigError, KindlingError


def _report_failure(exc: KindlingError, project_root: Path) -> None:
    """Print a build failure to stderr."""
    path = getattr(exc, "source_path", None) or getattr(exc, "path", None)
    message = getattr(exc, "message", str(exc))
    click.echo(click.style("Build failed:", fg="red", bold=True), err=True)
    if path is not None:
        try:
            shown = Path(path).resolve().relative_to(project_root.resolve())
        except ValueError:
            shown = path
        click.echo(click.style(f"  File: {shown}", fg="yellow"), err=True)
    click.echo(click.style(f"  Error: {message}", fg="white"), err=True)


def _run_build(project_root: Path, options: BuildOptions) -> BuildResult:
    try:
        return build_site(project_root, options)
    except (BuildError, ConfigError) as exc:
        _report_failure(exc, project_root)
        raise SystemExit(1) from None


def _site_settings(project_root: Path) -> tuple[Path, int]:
    """Return the configured output directory and port."""
    try:
        config = load_config(project_root)
    except ConfigError as exc:
        _report_failure(exc, project_root)
        raise SystemExit(1) from None
    return project_root / config.out_dir, config.port


def _serve_forever(output_dir: Path, port: int) -> None:  # pragma: no cover - blocks
    from .server import serve

    httpd = serve(output_dir, port)
    try:
        httpd.serve_forever()
    except KeyboardInterrupt:
        pass
    finally:
        httpd.server_close()


@click.group()
@click.version_option(version=__version__, prog_name="kindling")
def cli():
    """Kindling static site builder."""


@cli.command()
@click.option(
    "--dev",
    "dev_mode",
    is_flag=True,
    help="Skip minification, cache-busting and image conversion",
)
def build(dev_mode: bool):
    """Build the site into the output directory."""
    project_root = Path.cwd()
    options = BuildOptions(dev_mode=dev_mode, skip_image_compression=dev_mode)
    result = _run_build(project_root, options)
    if result.failures:
        click.echo(
            click.style(f"{len(result.failures)} file(s) had errors", fg="yellow"),
            err=True,
        )


@cli.command()
@click.option("--port", type=int, required=False, help="Port to serve on (overrides config)")
def dev(port: int | None):
    """Build, watch for changes and serve the site."""
    from .server import DevServer

    project_root = Path.cwd()
    try:
        server = DevServer(project_root, port=port)
    except ConfigError as exc:
        _report_failure(exc, project_root)
        raise SystemExit(1) from None
    server.start()


@cli.command()
@click.option("--port", type=int, required=False, help="Port to serve on (overrides config)")
def serve(port: int | None):
    """Serve the built site, building it first if there is no output."""
    project_root = Path.cwd()
    output_dir, config_port = _site_settings(project_root)
    if not output_dir.exists():
        click.echo("No build output found; building first...")
        _run_build(project_root, BuildOptions())
    _serve_forever(output_dir, port or config_port)


@cli.command()
@click.option("--port", type=int, required=False, help="Port to serve on (overrides config)")
def preview(port: int | None):
    """Run a production build and serve it."""
    project_root = Path.cwd()
    result = _run_build(project_root, BuildOptions())
    _, config_port = _site_settings(project_root)
    _serve_forever(result.output_dir, port or config_port)


@cli.command()
def clean():
    """Remove the output directory."""
    project_root = Path.cwd()
    output_dir, _ = _site_settings(project_root)
    if output_dir.resolve() == project_root.resolve():
        raise click.ClickException("Refusing to remove the project root")
    if output_dir.exists():
        shutil.rmtree(output_dir)
        click.echo(f"Removed {output_dir}")
    else:
        click.echo("Nothing to clean")


def main():
    """Entry point for the CLI application."""
    cli()
