"""Bundle manifest utilities.

This module is intentionally small and dependency-light. It provides:
- sha256 hashing helpers
- a manifest builder that lays entries out in the payload section
- human-readable manifest JSON for `shpack inspect --json`

Parsing and layout validation live in `shpack.bundle.runtime` because the
launcher stub needs them at run time.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import TYPE_CHECKING, Sequence

from .runtime import FORMAT_VERSION, Entry, Manifest, manifest_to_dict

if TYPE_CHECKING:  # pragma: no cover
    from .encoder import SourceEntry


def sha256_bytes(b: bytes) -> str:
    """Return hex-encoded sha256 for bytes."""
    if not isinstance(b, (bytes, bytearray)):
        raise TypeError(f"sha256_bytes: expected bytes, got {type(b).__name__}")
    return hashlib.sha256(bytes(b)).hexdigest()


def sha256_file(path: Path) -> str:
    """Return hex-encoded sha256 for a file on disk."""
    p = Path(path)
    h = hashlib.sha256()
    with p.open("rb") as f:
        for chunk in iter(lambda: f.read(1024 * 1024), b""):
            h.update(chunk)
    return h.hexdigest()


def build_manifest(
    entries: Sequence["SourceEntry"],
    *,
    entry_point: str,
    name: str,
    version: str,
) -> tuple[Manifest, bytes]:
    """Lay out `entries` back to back and return (manifest, payload section).

    Entries keep their input order; offsets are relative to the payload start.
    No timestamps are recorded so identical inputs give identical manifests.
    """
    if not isinstance(name, str) or not name.strip():
        raise ValueError("manifest: name must be a non-empty string")
    if not isinstance(version, str) or not version.strip():
        raise ValueError("manifest: version must be a non-empty string")

    records: list[Entry] = []
    offset = 0
    for item in entries:
        size = len(item.data)
        records.append(
            Entry(
                name=item.name,
                mode=item.mode,
                offset=offset,
                size=size,
                sha256=sha256_bytes(item.data),
            )
        )
        offset += size

    payload = b"".join(bytes(item.data) for item in entries)
    manifest = Manifest(
        format_version=FORMAT_VERSION,
        name=name.strip(),
        version=version.strip(),
        entry_point=entry_point,
        checksum=sha256_bytes(payload),
        entries=tuple(records),
    )
    return manifest, payload


def manifest_json_text(manifest: Manifest) -> str:
    """Pretty, stable JSON (indent=2, sorted keys, newline-terminated)."""
    return json.dumps(manifest_to_dict(manifest), indent=2, sort_keys=True) + "\n"
