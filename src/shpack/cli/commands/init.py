"""`shpack init` command: scaffold shpack.yaml, scripts/ and build/."""

from __future__ import annotations

import typer


def register(app: typer.Typer) -> None:
    @app.command("init")
    def init(
        target_dir: str = typer.Argument(".", help="Directory to initialize (created if missing)."),
    ) -> None:
        """Initialize a new shpack project."""
        from shpack.build.project import init_project
        from shpack.cli.main import fail

        try:
            created = init_project(target_dir)
        except OSError as e:
            fail(e)

        for path in created:
            typer.echo(str(path))
        typer.echo("Initialized shpack project")
