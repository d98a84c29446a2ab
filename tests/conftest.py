"""Pytest configuration.

This repo follows the `src/` layout. Some environments may invoke a `pytest`
entrypoint from a different Python install than the one used for
`python -m pip install -e ...`, which can cause `import shpack` to fail.

To keep the suite robust, we ensure `src/` is on `sys.path` during tests.
"""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path
from typing import Iterator

import pytest


def pytest_configure() -> None:
    repo_root = Path(__file__).resolve().parents[1]
    src_dir = repo_root / "src"
    sys.path.insert(0, str(src_dir))


# =============================================================================
# Shared Test Helpers
# =============================================================================


def write_script(path: Path, body: str, *, mode: int = 0o755) -> Path:
    """Write a shell script (with `#!/bin/sh`) and set its mode."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("#!/bin/sh\n" + body, encoding="utf-8")
    os.chmod(path, mode)
    return path


def bundle_env() -> dict[str, str]:
    """Environment for running bundles with the test interpreter."""
    env = dict(os.environ)
    env["SHPACK_PYTHON"] = sys.executable
    env.pop("SHPACK_DEBUG", None)
    return env


@pytest.fixture(autouse=True)
def _reset_shpack_logger() -> Iterator[None]:
    """CLI runs bind the `shpack` logger to a captured stream; unbind it afterwards."""
    yield
    for name in ("shpack", "shpack.runtime"):
        logger = logging.getLogger(name)
        logger.handlers.clear()
        logger.propagate = True
