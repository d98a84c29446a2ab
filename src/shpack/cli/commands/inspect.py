"""`shpack inspect` command.

Prints a bundle's manifest without extracting or running anything.
"""

from __future__ import annotations

import typer

from shpack.bundle.runtime import ShpackError


def register(app: typer.Typer) -> None:
    @app.command("inspect")
    def inspect(
        bundle: str = typer.Argument(..., help="Path to a bundled executable."),
        as_json: bool = typer.Option(False, "--json", help="Print the manifest as JSON."),
    ) -> None:
        """Show the contents of a bundle."""
        from shpack.bundle.manifest import manifest_json_text, sha256_file
        from shpack.bundle.runtime import read_bundle
        from shpack.cli.main import fail

        try:
            image = read_bundle(bundle, verify=False)
        except ShpackError as e:
            fail(e)

        m = image.manifest
        if as_json:
            typer.echo(manifest_json_text(m), nl=False)
            return

        typer.echo(f"name:        {m.name}")
        typer.echo(f"version:     {m.version}")
        typer.echo(f"format:      {m.format_version}")
        typer.echo(f"entry point: {m.entry_point}")
        typer.echo(f"checksum:    sha256:{m.checksum}")
        typer.echo(f"file sha256: {sha256_file(bundle)}")
        typer.echo(f"stub size:   {image.stub_length}")
        typer.echo(f"entries:     {len(m.entries)}")
        for e in m.entries:
            marker = "*" if e.name == m.entry_point else " "
            typer.echo(f"  {marker} {e.mode:04o} {e.size:>10} {e.name}")
