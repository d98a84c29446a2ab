"""Bundle runtime: decoding, verification, staging and launch.

This module is embedded verbatim in every bundle's launcher stub (see
`shpack.bundle.stub`). It must only import from the standard library and must
never import from the `shpack` package itself.

On-disk layout of a bundle:

    [launcher stub][manifest JSON][payload section][trailer]

The trailer is fixed-size and sits at the very end of the file (big-endian):

    format_version u32 | manifest_length u64 | payload_length u64 | magic 8s

Entry offsets in the manifest are relative to the start of the payload section,
so the decoder does not need to know how long the stub is.

Exit codes used by `main()`:
- 64: usage error
- 65: corrupt bundle or unsupported format version
- 74: bundle could not be read or extracted
- 126: entry point could not be executed
- 128+N: interrupted by signal N (or the entry point was killed by it)
- anything else: the entry point's own exit code
"""

from __future__ import annotations

import contextlib
import hashlib
import json
import logging
import os
import shutil
import signal
import struct
import subprocess
import sys
import tempfile
import threading
from pathlib import Path
from typing import Any, Iterator, NamedTuple

FORMAT_VERSION = 1
MIN_SUPPORTED_FORMAT = 1
MAX_SUPPORTED_FORMAT = 1

MAGIC = b"\x00SHPACK\x00"
TRAILER = struct.Struct(">IQQ8s")

MODE_MASK = 0o777

EXIT_USAGE = 64
EXIT_BAD_BUNDLE = 65
EXIT_IO = 74
EXIT_CANNOT_EXECUTE = 126

_CLEANUP_SIGNALS = tuple(
    getattr(signal, n) for n in ("SIGTERM", "SIGINT", "SIGHUP") if hasattr(signal, n)
)
_FORWARDED_SIGNALS = tuple(getattr(signal, n) for n in ("SIGTERM", "SIGHUP") if hasattr(signal, n))

logger = logging.getLogger("shpack.runtime")


# =============================================================================
# Errors
# =============================================================================


class ShpackError(Exception):
    """Base class for every error raised by shpack."""

    exit_code = 1


class InvalidEntryNameError(ShpackError, ValueError):
    """An entry name is absolute, escapes its root or is otherwise unsafe."""


class BundleFormatError(ShpackError, ValueError):
    exit_code = EXIT_BAD_BUNDLE


class UnsupportedFormatError(BundleFormatError):
    """The bundle was written with a format version this runtime cannot read."""


class CorruptBundleError(BundleFormatError):
    """The bundle is truncated, malformed or fails its checksum."""


class ExtractionError(ShpackError):
    exit_code = EXIT_IO


class LaunchError(ShpackError):
    exit_code = EXIT_CANNOT_EXECUTE


class BundleInterrupted(ShpackError):
    """A termination signal arrived while the bundle was being staged."""

    def __init__(self, signum: int):
        self.signum = int(signum)
        super().__init__(f"interrupted by signal {self.signum}")

    @property
    def exit_code(self) -> int:  # type: ignore[override]
        return 128 + self.signum


# =============================================================================
# Manifest model
# =============================================================================


class Entry(NamedTuple):
    name: str
    mode: int
    offset: int
    size: int
    sha256: str


class Manifest(NamedTuple):
    format_version: int
    name: str
    version: str
    entry_point: str
    checksum: str
    entries: tuple[Entry, ...]


class BundleImage(NamedTuple):
    """A decoded bundle: its manifest, payload bytes and the stub length."""

    manifest: Manifest
    payload: bytes
    stub_length: int


def validate_entry_name(name: Any) -> str:
    """Return `name` unchanged if it is a safe relative POSIX path.

    Raises:
        InvalidEntryNameError: for absolute paths, traversal (`..`), empty or
        `.` components, backslashes and NUL bytes.
    """
    if not isinstance(name, str) or not name:
        raise InvalidEntryNameError("entry name must be a non-empty string")
    if "\x00" in name:
        raise InvalidEntryNameError(f"entry name {name!r} contains a NUL byte")
    if "\\" in name:
        raise InvalidEntryNameError(f"entry name {name!r} contains a backslash")
    if name.startswith("/"):
        raise InvalidEntryNameError(f"entry name {name!r} is absolute")
    for part in name.split("/"):
        if part == "..":
            raise InvalidEntryNameError(f"entry name {name!r} escapes the bundle root")
        if part in ("", "."):
            raise InvalidEntryNameError(f"entry name {name!r} has an empty or '.' component")
    return name


def is_valid_mode(mode: Any) -> bool:
    return isinstance(mode, int) and not isinstance(mode, bool) and 0 <= mode <= MODE_MASK


def check_format_version(version: Any, *, where: str) -> int:
    if not isinstance(version, int) or isinstance(version, bool):
        raise CorruptBundleError(f"{where}: format_version must be an integer")
    if version > MAX_SUPPORTED_FORMAT or version < MIN_SUPPORTED_FORMAT:
        raise UnsupportedFormatError(
            f"{where}: format version {version} is not supported "
            f"(supported: {MIN_SUPPORTED_FORMAT}..{MAX_SUPPORTED_FORMAT})"
        )
    return version


def manifest_to_dict(manifest: Manifest) -> dict[str, Any]:
    return {
        "format_version": manifest.format_version,
        "name": manifest.name,
        "version": manifest.version,
        "entry_point": manifest.entry_point,
        "checksum": manifest.checksum,
        "entries": [e._asdict() for e in manifest.entries],
    }


def dump_manifest(manifest: Manifest) -> bytes:
    """Serialize canonically: sorted keys, compact separators, UTF-8."""
    text = json.dumps(manifest_to_dict(manifest), sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return text.encode("utf-8")


def _require(obj: dict[str, Any], key: str, kind: type, *, where: str) -> Any:
    value = obj.get(key)
    if not isinstance(value, kind) or (kind is int and isinstance(value, bool)):
        raise CorruptBundleError(f"{where}.{key}: expected {kind.__name__}")
    return value


def parse_manifest(data: bytes) -> Manifest:
    """Parse manifest JSON bytes into a `Manifest`.

    The format version is checked before anything else so a newer bundle is
    reported as unsupported rather than corrupt.
    """
    try:
        obj = json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as e:
        raise CorruptBundleError(f"manifest is not valid JSON: {e}") from e
    if not isinstance(obj, dict):
        raise CorruptBundleError("manifest: expected JSON object")

    format_version = check_format_version(obj.get("format_version"), where="manifest")

    raw_entries = obj.get("entries")
    if not isinstance(raw_entries, list):
        raise CorruptBundleError("manifest.entries: expected array")
    entries: list[Entry] = []
    for i, item in enumerate(raw_entries):
        where = f"manifest.entries[{i}]"
        if not isinstance(item, dict):
            raise CorruptBundleError(f"{where}: expected object")
        mode = _require(item, "mode", int, where=where)
        if not is_valid_mode(mode):
            raise CorruptBundleError(f"{where}.mode: invalid permission bits {mode!r}")
        entries.append(
            Entry(
                name=_require(item, "name", str, where=where),
                mode=mode,
                offset=_require(item, "offset", int, where=where),
                size=_require(item, "size", int, where=where),
                sha256=_require(item, "sha256", str, where=where),
            )
        )

    return Manifest(
        format_version=format_version,
        name=_require(obj, "name", str, where="manifest"),
        version=_require(obj, "version", str, where="manifest"),
        entry_point=_require(obj, "entry_point", str, where="manifest"),
        checksum=_require(obj, "checksum", str, where="manifest"),
        entries=tuple(entries),
    )


def check_layout(manifest: Manifest, payload_length: int) -> None:
    """Enforce manifest invariants against the payload section length."""
    if not manifest.entries:
        raise CorruptBundleError("manifest has no entries")
    seen: set[str] = set()
    cursor = 0
    for entry in manifest.entries:
        validate_entry_name(entry.name)
        if entry.name in seen:
            raise CorruptBundleError(f"duplicate entry {entry.name!r}")
        seen.add(entry.name)
        if entry.offset < cursor or entry.size < 0:
            raise CorruptBundleError(f"entry {entry.name!r} overlaps a previous entry")
        cursor = entry.offset + entry.size
        if cursor > payload_length:
            raise CorruptBundleError(f"entry {entry.name!r} extends past the payload section")
    if manifest.entry_point not in seen:
        raise CorruptBundleError(f"entry point {manifest.entry_point!r} is not in the manifest")


def verify_payload(manifest: Manifest, payload: bytes) -> None:
    actual = hashlib.sha256(payload).hexdigest()
    if actual == manifest.checksum:
        return
    for entry in manifest.entries:
        blob = payload[entry.offset : entry.offset + entry.size]
        if hashlib.sha256(blob).hexdigest() != entry.sha256:
            raise CorruptBundleError(f"checksum mismatch in entry {entry.name!r}")
    raise CorruptBundleError(f"payload checksum mismatch: expected {manifest.checksum}, got {actual}")


def load_image(data: bytes, *, verify: bool = True) -> BundleImage:
    """Decode a bundle (or a bare section) from bytes."""
    end = len(data) - TRAILER.size
    if end < 0:
        raise CorruptBundleError("file is too small to be a bundle")
    format_version, manifest_length, payload_length, magic = TRAILER.unpack_from(data, end)
    if magic != MAGIC:
        raise CorruptBundleError("bundle trailer not found (not a shpack bundle?)")
    check_format_version(format_version, where="trailer")

    payload_start = end - payload_length
    manifest_start = payload_start - manifest_length
    if manifest_start < 0:
        raise CorruptBundleError("trailer lengths exceed the file size (truncated bundle?)")

    manifest = parse_manifest(data[manifest_start:payload_start])
    if manifest.format_version != format_version:
        raise CorruptBundleError(
            f"manifest format version {manifest.format_version} does not match trailer {format_version}"
        )
    payload = data[payload_start:end]
    check_layout(manifest, len(payload))
    if verify:
        verify_payload(manifest, payload)
    return BundleImage(manifest=manifest, payload=payload, stub_length=manifest_start)


def read_bundle(path: str | Path, *, verify: bool = True) -> BundleImage:
    p = Path(path)
    try:
        data = p.read_bytes()
    except OSError as e:
        raise ExtractionError(f"cannot read bundle {p}: {e}") from e
    return load_image(data, verify=verify)


# =============================================================================
# Staging and extraction
# =============================================================================


def _raise_interrupted(signum: int, frame: Any) -> None:
    raise BundleInterrupted(signum)


@contextlib.contextmanager
def _signal_handlers(handler: Any, signals: tuple[int, ...]) -> Iterator[None]:
    # signal.signal() only works in the main thread; elsewhere run unguarded.
    if threading.current_thread() is not threading.main_thread():
        yield
        return
    previous = {}
    try:
        for sig in signals:
            previous[sig] = signal.signal(sig, handler)
        yield
    finally:
        for sig, old in previous.items():
            signal.signal(sig, old)


@contextlib.contextmanager
def staging_directory(prefix: str = "shpack-") -> Iterator[Path]:
    """Create a private staging directory, removed on every exit path.

    Termination signals raise `BundleInterrupted` while the directory exists,
    so cleanup runs through the normal unwinding path.
    """
    with _signal_handlers(_raise_interrupted, _CLEANUP_SIGNALS):
        path = None
        try:
            path = tempfile.mkdtemp(prefix=prefix)
            logger.debug("staging directory: %s", path)
            yield Path(path)
        finally:
            if path is not None:
                shutil.rmtree(path, ignore_errors=True)


def _is_within(root: Path, target: Path) -> bool:
    try:
        target.resolve().relative_to(root.resolve())
    except ValueError:
        return False
    return True


def extract_entries(image: BundleImage, dest: str | Path) -> list[Path]:
    """Write every entry below `dest` with its declared mode."""
    root = Path(dest)
    written: list[Path] = []
    for entry in image.manifest.entries:
        validate_entry_name(entry.name)
        target = root.joinpath(*entry.name.split("/"))
        if not _is_within(root, target):
            raise InvalidEntryNameError(f"entry {entry.name!r} resolves outside {root}")
        blob = image.payload[entry.offset : entry.offset + entry.size]
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            flags = os.O_WRONLY | os.O_CREAT | os.O_EXCL | getattr(os, "O_NOFOLLOW", 0)
            fd = os.open(target, flags, 0o600)
            with os.fdopen(fd, "wb") as f:
                f.write(blob)
            os.chmod(target, entry.mode)
        except OSError as e:
            raise ExtractionError(f"failed to extract {entry.name!r}: {e}") from e
        written.append(target)
    logger.debug("extracted %d entries into %s", len(written), root)
    return written


# =============================================================================
# Launch
# =============================================================================


def entry_environment(manifest: Manifest, *, staging: Path, bundle_path: Path) -> dict[str, str]:
    env = dict(os.environ)
    env["SHPACK_SCRIPT_DIR"] = str(staging)
    env["SHPACK_BUNDLE"] = str(bundle_path)
    env["SHPACK_NAME"] = manifest.name
    env["SHPACK_VERSION"] = manifest.version
    return env


def _ignore(signum: int, frame: Any) -> None:
    pass


def run_entry(path: Path, args: list[str], *, env: dict[str, str]) -> int:
    """Run `path` through the OS and return a shell-style exit status.

    While the child runs, SIGTERM/SIGHUP are forwarded to it and SIGINT is
    ignored here because the terminal already delivers it to the child.
    Handlers are installed before the child starts. A forwarded signal that
    arrives before `Popen` returns is delivered once the child exists.
    """
    children: list[subprocess.Popen] = []
    pending: list[int] = []

    def _forward(signum: int, frame: Any) -> None:
        if children:
            children[0].send_signal(signum)
        else:
            pending.append(signum)

    # SIG_IGN would be inherited across exec
    ignored = tuple(s for s in _CLEANUP_SIGNALS if s not in _FORWARDED_SIGNALS)
    with _signal_handlers(_ignore, ignored), _signal_handlers(_forward, _FORWARDED_SIGNALS):
        try:
            proc = subprocess.Popen([str(path), *args], env=env)
        except OSError as e:
            raise LaunchError(f"cannot execute entry point {path.name!r}: {e}") from e
        children.append(proc)
        while pending:
            proc.send_signal(pending.pop(0))
        returncode = proc.wait()
    if returncode < 0:
        return 128 - returncode
    return returncode


def run_bundle(bundle_path: str | Path, args: list[str]) -> int:
    """Verify, stage, extract and run a bundle; return the entry's exit code."""
    path = Path(bundle_path).absolute()
    image = read_bundle(path)
    manifest = image.manifest
    safe_name = "".join(c if c.isalnum() or c in "-_." else "_" for c in manifest.name) or "bundle"
    with staging_directory(prefix=f"shpack-{safe_name}-") as staging:
        extract_entries(image, staging)
        entry = staging.joinpath(*manifest.entry_point.split("/"))
        env = entry_environment(manifest, staging=staging, bundle_path=path)
        logger.debug("running %s with %d argument(s)", manifest.entry_point, len(args))
        return run_entry(entry, args, env=env)


def _configure_logging() -> None:
    level = logging.DEBUG if os.environ.get("SHPACK_DEBUG", "") not in ("", "0") else logging.WARNING
    logger.setLevel(level)
    logger.propagate = False
    handler = logging.StreamHandler(stream=sys.stderr)
    handler.setFormatter(logging.Formatter("shpack: %(message)s"))
    logger.handlers.clear()
    logger.addHandler(handler)


def main(argv: list[str] | None = None) -> int:
    """Launcher entry point. `argv[0]` is the bundle path, the rest is forwarded."""
    if argv is None:
        argv = sys.argv
    _configure_logging()
    if not argv:
        logger.error("error: usage: runtime <bundle> [args...]")
        return EXIT_USAGE
    try:
        return run_bundle(argv[0], list(argv[1:]))
    except ShpackError as e:
        logger.error("error: %s", e)
        return e.exit_code


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
elif __name__ == "__shpack__":
    sys.exit(main(sys.argv))
