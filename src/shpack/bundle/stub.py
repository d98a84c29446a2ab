"""Launcher stub rendering.

The stub is a POSIX `sh` header followed by the source of
`shpack.bundle.runtime`, fenced by two marker lines:

    #!/bin/sh
    exec "${SHPACK_PYTHON:-python3}" -c '<bootstrap>' "$0" "$@"
    # >>> shpack-runtime <<<
    ...runtime source...
    # <<< shpack-runtime >>>

`sh` never reads past the `exec` line. The bootstrap re-reads the bundle,
cuts the runtime source out between the markers and executes it; the runtime
then finds the manifest through the trailer at the end of the file. The stub
depends only on the shpack version, so every bundle built by one release
starts with the same bytes.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from shpack import __version__

from . import runtime

RUNTIME_BEGIN = b"\n# >>> shpack-runtime <<<\n"
RUNTIME_END = b"\n# <<< shpack-runtime >>>\n"

# Single line of Python passed to `python -c`; must not contain single quotes.
# The markers are written with escaped newlines so they never match here.
_BOOTSTRAP = (
    "import sys;"
    'f=open(sys.argv[1],"rb");d=f.read();f.close();'
    's=d.split(b"\\n# >>> shpack-runtime <<<\\n",1)[1].split(b"\\n# <<< shpack-runtime >>>\\n",1)[0];'
    "del d;sys.argv.pop(0);"
    'exec(compile(s,sys.argv[0],"exec"),{"__name__":"__shpack__"})'
)


class StubError(RuntimeError):
    """The launcher stub could not be rendered (broken installation)."""


def runtime_source() -> bytes:
    return Path(runtime.__file__).read_bytes()


@lru_cache(maxsize=1)
def render_stub() -> bytes:
    """Return the launcher stub bytes for this shpack version."""
    if "'" in _BOOTSTRAP:
        raise StubError("bootstrap must not contain single quotes")
    source = runtime_source()
    if RUNTIME_BEGIN in source or RUNTIME_END in source:
        raise StubError("runtime source contains a stub marker line")
    if not source.endswith(b"\n"):
        source += b"\n"

    header = (
        "#!/bin/sh\n"
        f"# shpack {__version__} self-extracting bundle. Do not edit.\n"
        f"exec \"${{SHPACK_PYTHON:-python3}}\" -c '{_BOOTSTRAP}' \"$0\" \"$@\"\n"
    ).encode("utf-8")
    # header ends with a newline, so RUNTIME_BEGIN's leading newline is a blank line.
    return header.rstrip(b"\n") + RUNTIME_BEGIN + source.rstrip(b"\n") + RUNTIME_END


def assemble_bundle(section: bytes) -> bytes:
    """Prepend the launcher stub to an encoded section."""
    return render_stub() + section
