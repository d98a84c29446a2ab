"""`shpack verify` command.

Checks the trailer, format version, manifest invariants and payload checksum.
"""

from __future__ import annotations

import typer

from shpack.bundle.runtime import ShpackError


def register(app: typer.Typer) -> None:
    @app.command("verify")
    def verify(
        bundle: str = typer.Argument(..., help="Path to a bundled executable."),
    ) -> None:
        """Validate a bundle without running it."""
        from shpack.bundle.runtime import read_bundle
        from shpack.cli.main import fail

        try:
            read_bundle(bundle, verify=True)
        except ShpackError as e:
            fail(e)

        typer.echo("OK")
