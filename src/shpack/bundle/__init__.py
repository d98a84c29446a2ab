"""shpack bundle format.

- `runtime`: decoder, verifier and launcher (embedded in every bundle)
- `manifest`: sha256 helpers + manifest builder
- `encoder`: entries -> `manifest | payload | trailer` section
- `stub`: launcher stub rendering and final assembly
"""

from __future__ import annotations

from .encoder import DEFAULT_MAX_ENTRY_SIZE, EmptyBundleError, EncodingError, SourceEntry, decode_section, encode_section
from .runtime import (
    FORMAT_VERSION,
    BundleImage,
    CorruptBundleError,
    Entry,
    ExtractionError,
    InvalidEntryNameError,
    Manifest,
    ShpackError,
    UnsupportedFormatError,
    extract_entries,
    read_bundle,
)
from .stub import assemble_bundle, render_stub

__all__ = [
    "DEFAULT_MAX_ENTRY_SIZE",
    "FORMAT_VERSION",
    "BundleImage",
    "CorruptBundleError",
    "EmptyBundleError",
    "EncodingError",
    "Entry",
    "ExtractionError",
    "InvalidEntryNameError",
    "Manifest",
    "ShpackError",
    "SourceEntry",
    "UnsupportedFormatError",
    "assemble_bundle",
    "decode_section",
    "encode_section",
    "extract_entries",
    "read_bundle",
    "render_stub",
]
