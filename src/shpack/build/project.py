"""Project workflows: `build` from shpack.yaml, `make` from a folder, `init`.

A project looks like:

    shpack.yaml
    scripts/main.sh
    scripts/lib/util.sh
    build/            # default output directory

Files under the scripts directory that match the `include` patterns are
bundled with names relative to that directory (`main.sh`, `lib/util.sh`).
Every bundled script is marked executable so scripts can call each other
through `$SHPACK_SCRIPT_DIR`.
"""

from __future__ import annotations

import fnmatch
import logging
import os
from pathlib import Path
from typing import Iterable

from shpack.config import CONFIG_FILENAME, ProjectConfig, load_config, sample_config_text

from .driver import BuildResult, InputNotFoundError, build_bundle, read_source

logger = logging.getLogger(__name__)

SAMPLE_MAIN_SH = """#!/bin/sh
# Main entry point script.
# Other bundled scripts live next to this one in "$SHPACK_SCRIPT_DIR".
echo "Hello from $SHPACK_NAME $SHPACK_VERSION"
"""


def discover_scripts(scripts_dir: Path, patterns: Iterable[str]) -> list[Path]:
    """Return files below `scripts_dir` whose basename matches a pattern, sorted."""
    pats = list(patterns)
    found: list[Path] = []
    for dirpath, dirnames, filenames in os.walk(scripts_dir):
        dirnames.sort()
        for fn in filenames:
            if any(fnmatch.fnmatch(fn, pat) for pat in pats):
                found.append(Path(dirpath) / fn)
    return sorted(found, key=lambda p: p.relative_to(scripts_dir).as_posix())


def _build_from_dir(
    scripts_dir: Path,
    *,
    entry_path: Path,
    cfg: ProjectConfig,
    output: Path,
) -> BuildResult:
    files = discover_scripts(scripts_dir, cfg.include)
    if entry_path.resolve() not in {f.resolve() for f in files}:
        files.insert(0, entry_path)

    sources = [
        read_source(f, name=Path(os.path.relpath(f, scripts_dir)).as_posix(), executable=True) for f in files
    ]
    entry_point = Path(os.path.relpath(entry_path, scripts_dir)).as_posix()
    logger.info("Building %s...", cfg.name)
    return build_bundle(
        sources,
        output,
        entry_point=entry_point,
        name=cfg.name,
        version=cfg.version,
        max_entry_size=cfg.max_entry_size,
    )


def build_project(
    source_dir: str | Path = ".",
    *,
    config_file: str = CONFIG_FILENAME,
    output: str | Path | None = None,
) -> BuildResult:
    """Build the project rooted at `source_dir` as described by its config.

    Output precedence: `output` argument, then `output:` in the config (both
    relative to the current directory), then `<source_dir>/build/<name>`.
    """
    root = Path(source_dir)
    if not root.is_dir():
        raise InputNotFoundError(f"source directory does not exist: {root}")
    logger.info("Building from: %s", root.resolve())
    cfg = load_config(root / config_file)

    scripts_dir = root / cfg.scripts
    if not scripts_dir.is_dir():
        raise InputNotFoundError(f"scripts directory not found: {scripts_dir}")
    entry_path = root / cfg.entry
    if not entry_path.is_file():
        raise InputNotFoundError(f"entry script not found: {cfg.entry}")

    if output is not None:
        out = Path(output)
    elif cfg.output:
        out = Path(cfg.output)
    else:
        out = root / "build" / cfg.name
    return _build_from_dir(scripts_dir, entry_path=entry_path, cfg=cfg, output=out)


def make_folder(folder: str | Path, *, output_dir: str | Path = ".") -> BuildResult:
    """Quick build of a folder of `*.sh` scripts whose entry is `main.sh`."""
    src = Path(folder)
    if not src.is_dir():
        raise InputNotFoundError(f"folder does not exist: {src}")
    entry_path = src / "main.sh"
    if not entry_path.is_file():
        raise InputNotFoundError(f"no main.sh found in {src}")

    tool_name = src.resolve().name
    logger.info("Making %s from: %s", tool_name, src.resolve())
    cfg = ProjectConfig(name=tool_name)
    out = Path(output_dir) / tool_name
    # `make ./tool` from the parent dir: the binary goes inside the folder
    if out.is_dir():
        out = out / tool_name
    return _build_from_dir(src, entry_path=entry_path, cfg=cfg, output=out)


def _write_if_missing(path: Path, text: str, *, mode: int) -> bool:
    if path.exists():
        logger.warning("%s already exists, leaving it untouched", path)
        return False
    path.write_text(text, encoding="utf-8")
    os.chmod(path, mode)
    return True


def init_project(target_dir: str | Path = ".") -> list[Path]:
    """Scaffold a project; returns the files that were created."""
    root = Path(target_dir)
    for sub in ("scripts", "build"):
        (root / sub).mkdir(parents=True, exist_ok=True)

    created: list[Path] = []
    name = root.resolve().name or "mytool"
    config_path = root / CONFIG_FILENAME
    if _write_if_missing(config_path, sample_config_text(name), mode=0o644):
        created.append(config_path)
    main_path = root / "scripts" / "main.sh"
    if _write_if_missing(main_path, SAMPLE_MAIN_SH, mode=0o755):
        created.append(main_path)
    logger.info("Initialized shpack project in %s", root.resolve())
    return created
