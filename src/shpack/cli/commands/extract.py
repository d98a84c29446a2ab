"""`shpack extract` command.

Verifies a bundle and writes its entries to a directory without executing
anything. The directory must not already contain the bundled files.
"""

from __future__ import annotations

from pathlib import Path

import typer

from shpack.bundle.runtime import ShpackError


def register(app: typer.Typer) -> None:
    @app.command("extract")
    def extract(
        bundle: str = typer.Argument(..., help="Path to a bundled executable."),
        out: str = typer.Option(..., "--out", help="Directory to extract into."),
    ) -> None:
        """Extract a bundle's files."""
        from shpack.bundle.runtime import extract_entries, read_bundle
        from shpack.cli.main import fail

        out_dir = Path(out)
        try:
            image = read_bundle(bundle, verify=True)
            out_dir.mkdir(parents=True, exist_ok=True)
            written = extract_entries(image, out_dir)
        except (ShpackError, OSError) as e:
            fail(e)

        for path in written:
            typer.echo(str(path))
