"""Bundle building: the driver and the project workflows on top of it."""

from __future__ import annotations

from .driver import BuildResult, InputNotFoundError, OutputWriteError, build_bundle, bundle_files, read_source
from .project import build_project, discover_scripts, init_project, make_folder

__all__ = [
    "BuildResult",
    "InputNotFoundError",
    "OutputWriteError",
    "build_bundle",
    "build_project",
    "bundle_files",
    "discover_scripts",
    "init_project",
    "make_folder",
    "read_source",
]
