"""Bundler driver: input files -> encoded section -> executable on disk."""

from __future__ import annotations

import logging
import os
import stat
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Sequence

from shpack.bundle.encoder import DEFAULT_MAX_ENTRY_SIZE, SourceEntry, encode_section
from shpack.bundle.manifest import sha256_bytes
from shpack.bundle.runtime import Manifest, ShpackError, load_image
from shpack.bundle.stub import assemble_bundle

BUNDLE_MODE = 0o755

logger = logging.getLogger(__name__)


class InputNotFoundError(ShpackError):
    """A listed input does not exist or is not a regular file."""


class OutputWriteError(ShpackError):
    """The bundle could not be written to its destination."""


@dataclass(frozen=True)
class BuildResult:
    output: Path
    manifest: Manifest
    size: int
    sha256: str


def with_exec_bits(mode: int) -> int:
    """Add execute permission wherever read permission is set (owner always)."""
    return mode | ((mode & 0o444) >> 2) | 0o100


def read_source(path: str | Path, *, name: str | None = None, executable: bool = False) -> SourceEntry:
    """Read one input file into a `SourceEntry`, keeping its permission bits."""
    p = Path(path)
    try:
        st = p.stat()
    except FileNotFoundError as e:
        raise InputNotFoundError(f"input not found: {p}") from e
    except OSError as e:
        raise InputNotFoundError(f"cannot access {p}: {e}") from e
    if not stat.S_ISREG(st.st_mode):
        raise InputNotFoundError(f"input is not a regular file: {p}")
    try:
        data = p.read_bytes()
    except OSError as e:
        raise InputNotFoundError(f"cannot read {p}: {e}") from e

    mode = stat.S_IMODE(st.st_mode) & 0o777
    if executable:
        mode = with_exec_bits(mode)
    return SourceEntry(name=name if name is not None else p.name, data=data, mode=mode)


def entry_name_for(path: Path, base_dir: Path | None) -> str:
    """Bundle-relative name: basename, or POSIX path relative to `base_dir`."""
    if base_dir is None:
        return path.name
    try:
        rel = Path(os.path.relpath(path, base_dir))
    except ValueError:
        # Different drives on Windows; keep the raw path so validation rejects it.
        return str(path)
    return rel.as_posix()


def write_executable(output: str | Path, data: bytes) -> Path:
    """Atomically write `data` to `output` with mode 0755."""
    out = Path(output)
    if out.is_dir():
        raise OutputWriteError(f"output path is a directory: {out}")
    tmp_name = None
    try:
        out.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{out.name}.", suffix=".tmp", dir=out.parent)
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        os.chmod(tmp_name, BUNDLE_MODE)
        os.replace(tmp_name, out)
        tmp_name = None
    except OSError as e:
        raise OutputWriteError(f"cannot write {out}: {e}") from e
    finally:
        if tmp_name is not None:
            Path(tmp_name).unlink(missing_ok=True)
    return out


def build_bundle(
    sources: Sequence[SourceEntry],
    output: str | Path,
    *,
    entry_point: str | None = None,
    name: str | None = None,
    version: str = "1.0.0",
    max_entry_size: int = DEFAULT_MAX_ENTRY_SIZE,
) -> BuildResult:
    """Encode `sources`, prepend the launcher stub and write the executable."""
    out = Path(output)
    bundle_name = name or out.name
    section = encode_section(
        sources,
        entry_point=entry_point,
        name=bundle_name,
        version=version,
        max_entry_size=max_entry_size,
    )
    data = assemble_bundle(section)
    write_executable(out, data)

    # The manifest is re-read from the section so callers see exactly what was written.
    image = load_image(section)
    logger.info("Built %s (%d entries, %d bytes)", out, len(image.manifest.entries), len(data))
    return BuildResult(output=out, manifest=image.manifest, size=len(data), sha256=sha256_bytes(data))


def bundle_files(
    paths: Iterable[str | Path],
    output: str | Path,
    *,
    entry: str | None = None,
    name: str | None = None,
    version: str = "1.0.0",
    base_dir: str | Path | None = None,
    max_entry_size: int = DEFAULT_MAX_ENTRY_SIZE,
) -> BuildResult:
    """Bundle the given files; the first (or `entry`) is the entry point.

    Entries are named by basename, or by path relative to `base_dir`. The
    entry point gets execute permission added; other modes are kept as-is.
    """
    path_list = [Path(p) for p in paths]
    base = Path(base_dir) if base_dir is not None else None
    names = [entry_name_for(p, base) for p in path_list]
    entry_point = entry if entry is not None else (names[0] if names else None)

    sources: list[SourceEntry] = []
    for p, entry_name in zip(path_list, names):
        sources.append(read_source(p, name=entry_name, executable=entry_name == entry_point))
        logger.debug("added %s as %r", p, entry_name)

    return build_bundle(
        sources,
        output,
        entry_point=entry_point,
        name=name,
        version=version,
        max_entry_size=max_entry_size,
    )
