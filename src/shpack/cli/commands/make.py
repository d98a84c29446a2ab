"""`shpack make` command.

Quick build from an existing folder of `*.sh` scripts with a `main.sh`,
without any project setup. The executable is named after the folder.
"""

from __future__ import annotations

import typer

from shpack.bundle.runtime import ShpackError


def register(app: typer.Typer) -> None:
    @app.command("make")
    def make(
        folder: str = typer.Argument(..., help="Folder with main.sh and other *.sh scripts."),
        output_dir: str = typer.Option(".", "--output-dir", help="Directory to write the executable to."),
    ) -> None:
        """Quick build from an existing script folder."""
        from shpack.build.project import make_folder
        from shpack.cli.main import fail

        try:
            result = make_folder(folder, output_dir=output_dir)
        except ShpackError as e:
            fail(e)

        typer.echo(f"Built successfully: {result.output}")
