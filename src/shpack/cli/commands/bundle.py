"""`shpack bundle` command.

Bundles explicit script paths into one executable. The first script (or the
one named by `--entry`) is the entry point.
"""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional

import typer

from shpack.bundle.encoder import DEFAULT_MAX_ENTRY_SIZE
from shpack.bundle.runtime import ShpackError


def register(app: typer.Typer) -> None:
    @app.command("bundle")
    def bundle(
        scripts: List[str] = typer.Argument(..., help="Scripts and data files to embed, entry point first."),
        output: str = typer.Option(..., "--output", "-o", help="Path of the executable to write."),
        entry: Optional[str] = typer.Option(
            None, "--entry", help="Entry point name inside the bundle (default: first script)."
        ),
        name: Optional[str] = typer.Option(None, "--name", help="Bundle name (default: output file name)."),
        bundle_version: str = typer.Option("1.0.0", "--bundle-version", help="Version recorded in the bundle."),
        base_dir: Optional[str] = typer.Option(
            None,
            "--base-dir",
            help="Name entries relative to this directory instead of by basename.",
        ),
        max_entry_size: int = typer.Option(
            DEFAULT_MAX_ENTRY_SIZE, "--max-entry-size", help="Largest allowed entry, in bytes."
        ),
    ) -> None:
        """Bundle scripts into a single self-extracting executable."""
        from shpack.build.driver import bundle_files
        from shpack.cli.main import fail

        if max_entry_size <= 0:
            raise typer.BadParameter("--max-entry-size must be positive")

        try:
            result = bundle_files(
                [Path(s) for s in scripts],
                Path(output),
                entry=entry,
                name=name,
                version=bundle_version,
                base_dir=base_dir,
                max_entry_size=max_entry_size,
            )
        except ShpackError as e:
            fail(e)

        typer.echo(str(result.output))
