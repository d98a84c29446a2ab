"""shpack CLI entrypoint (Typer)."""

from __future__ import annotations

import logging
import sys
from typing import NoReturn

import typer

app = typer.Typer(
    name="shpack",
    add_completion=False,
    no_args_is_help=True,
    help="shpack - Shell Script Bundler: package multiple scripts into a single executable.",
)


def configure_logging(*, verbose: int, quiet: int) -> logging.Logger:
    """Configure the `shpack` logger for CLI use."""
    level = logging.INFO
    if quiet >= 2:
        level = logging.ERROR
    elif quiet >= 1:
        level = logging.WARNING
    elif verbose >= 1:
        level = logging.DEBUG

    logger = logging.getLogger("shpack")
    logger.setLevel(level)
    logger.propagate = False

    handler = logging.StreamHandler(stream=sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("%(message)s"))

    logger.handlers.clear()
    logger.addHandler(handler)
    return logger


def fail(e: Exception) -> NoReturn:
    """Report a shpack error on stderr and exit with its exit code."""
    typer.echo(f"Error: {e}", err=True)
    raise typer.Exit(code=getattr(e, "exit_code", 1))


def _version_text() -> str:
    from shpack import __version__

    return f"shpack version {__version__}"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(_version_text())
        raise typer.Exit()


@app.callback()
def _callback(
    verbose: int = typer.Option(0, "--verbose", "-v", count=True, help="More log output (repeatable)."),
    quiet: int = typer.Option(0, "--quiet", "-q", count=True, help="Less log output (repeatable)."),
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Print the shpack version and exit.",
    ),
) -> None:
    """shpack CLI."""
    configure_logging(verbose=verbose, quiet=quiet)


@app.command("version")
def version() -> None:
    """Print the installed shpack version."""
    typer.echo(_version_text())


def _register_commands() -> None:
    """Register CLI subcommands.

    Importing these modules must remain lightweight so `shpack --help` is fast.
    """
    from shpack.cli.commands import build as build_cmd
    from shpack.cli.commands import bundle as bundle_cmd
    from shpack.cli.commands import extract as extract_cmd
    from shpack.cli.commands import init as init_cmd
    from shpack.cli.commands import inspect as inspect_cmd
    from shpack.cli.commands import make as make_cmd
    from shpack.cli.commands import verify as verify_cmd

    bundle_cmd.register(app)
    build_cmd.register(app)
    make_cmd.register(app)
    init_cmd.register(app)
    inspect_cmd.register(app)
    verify_cmd.register(app)
    extract_cmd.register(app)


_register_commands()
