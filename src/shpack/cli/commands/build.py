"""`shpack build` command.

Builds the project described by `shpack.yaml` in SOURCE_DIR (default: `.`).
"""

from __future__ import annotations

from typing import Optional

import typer

from shpack.bundle.runtime import ShpackError
from shpack.config import CONFIG_FILENAME


def register(app: typer.Typer) -> None:
    @app.command("build")
    def build(
        source_dir: str = typer.Argument(".", help="Project directory containing shpack.yaml."),
        config: str = typer.Option(CONFIG_FILENAME, "--config", help="Config file name inside SOURCE_DIR."),
        output: Optional[str] = typer.Option(None, "--output", "-o", help="Override the output path."),
    ) -> None:
        """Build an executable from a shpack project."""
        from shpack.build.project import build_project
        from shpack.cli.main import fail

        try:
            result = build_project(source_dir, config_file=config, output=output)
        except ShpackError as e:
            fail(e)

        typer.echo(f"Built successfully: {result.output}")
