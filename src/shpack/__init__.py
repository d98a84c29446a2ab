"""shpack: Shell Script Bundler.

Packs several shell scripts into one self-extracting executable that stages
them in a private temporary directory and runs the entry script.
"""

from __future__ import annotations

__version__ = "1.0.2"

from shpack.bundle import SourceEntry, encode_section, read_bundle  # noqa: E402
from shpack.build import bundle_files  # noqa: E402

__all__ = [
    "__version__",
    "SourceEntry",
    "bundle_files",
    "encode_section",
    "read_bundle",
]
