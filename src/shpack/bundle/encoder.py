"""Payload encoder.

Turns an ordered list of `SourceEntry` blobs into a bundle *section*:

    manifest JSON | payload section | trailer

The section is position independent; `shpack.bundle.stub` prepends the
launcher stub to make an executable. Encoding is a pure transformation and is
deterministic: the same entries in the same order always give the same bytes.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from .manifest import build_manifest
from .runtime import (
    FORMAT_VERSION,
    MAGIC,
    MODE_MASK,
    TRAILER,
    BundleImage,
    ShpackError,
    dump_manifest,
    is_valid_mode,
    load_image,
    validate_entry_name,
)

DEFAULT_MAX_ENTRY_SIZE = 64 * 1024 * 1024


class EncodingError(ShpackError, ValueError):
    """The inputs cannot be encoded into a valid bundle."""


class EmptyBundleError(EncodingError):
    """A bundle must contain at least one entry."""


@dataclass(frozen=True)
class SourceEntry:
    """One file to embed: its bundle-relative name, content and mode bits."""

    name: str
    data: bytes
    mode: int = 0o644


def _check_entries(entries: list[SourceEntry], *, max_entry_size: int) -> None:
    names: set[str] = set()
    for i, item in enumerate(entries):
        validate_entry_name(item.name)
        if item.name in names:
            raise EncodingError(f"duplicate entry name {item.name!r}")
        names.add(item.name)
        if not isinstance(item.data, (bytes, bytearray)):
            raise EncodingError(f"entries[{i}] ({item.name!r}): content must be bytes, got {type(item.data).__name__}")
        if not is_valid_mode(item.mode):
            raise EncodingError(f"entry {item.name!r}: invalid mode {item.mode!r} (allowed: 0..{MODE_MASK:#o})")
        if len(item.data) > max_entry_size:
            raise EncodingError(
                f"entry {item.name!r} is {len(item.data)} bytes, larger than the {max_entry_size} byte limit"
            )
        # Nested bundles are not supported.
        if bytes(item.data[-len(MAGIC) :]) == MAGIC:
            raise EncodingError(f"entry {item.name!r} is itself a shpack bundle; nesting is not supported")

    # A name cannot be both a file and the parent directory of another entry.
    for name in names:
        parts = name.split("/")
        for depth in range(1, len(parts)):
            parent = "/".join(parts[:depth])
            if parent in names:
                raise EncodingError(f"entry {name!r} needs {parent!r} to be a directory, but it is a file")


def encode_section(
    entries: Iterable[SourceEntry],
    *,
    entry_point: str | None = None,
    name: str = "bundle",
    version: str = "1.0.0",
    max_entry_size: int = DEFAULT_MAX_ENTRY_SIZE,
) -> bytes:
    """Encode entries into `manifest | payload | trailer` bytes.

    The entry point defaults to the first entry and must be executable by its
    owner, since the launcher relies on the OS to run it.

    Raises:
        EmptyBundleError: no entries.
        InvalidEntryNameError: an unsafe entry name.
        EncodingError: any other invalid input.
    """
    items = list(entries)
    if not items:
        raise EmptyBundleError("cannot build a bundle with no entries")
    _check_entries(items, max_entry_size=max_entry_size)

    if entry_point is None:
        entry_point = items[0].name
    by_name = {item.name: item for item in items}
    if entry_point not in by_name:
        raise EncodingError(f"entry point {entry_point!r} is not one of the bundled files")
    if not by_name[entry_point].mode & 0o100:
        raise EncodingError(f"entry point {entry_point!r} is not executable (mode {by_name[entry_point].mode:#o})")

    try:
        manifest, payload = build_manifest(items, entry_point=entry_point, name=name, version=version)
    except ValueError as e:
        raise EncodingError(str(e)) from e

    manifest_bytes = dump_manifest(manifest)
    trailer = TRAILER.pack(FORMAT_VERSION, len(manifest_bytes), len(payload), MAGIC)
    return manifest_bytes + payload + trailer


def decode_section(data: bytes, *, verify: bool = True) -> BundleImage:
    """Decode a section or a whole bundle. Thin alias of the runtime decoder."""
    return load_image(data, verify=verify)
