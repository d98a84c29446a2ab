"""Project configuration (`shpack.yaml`).

Example:

    name: mytool
    entry: scripts/main.sh
    scripts: scripts
    version: 1.0.0
    include: ["*.sh"]
    output: build/mytool      # optional

A missing file means "use the defaults"; empty values fall back to defaults.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any

import yaml

from shpack.bundle.encoder import DEFAULT_MAX_ENTRY_SIZE
from shpack.bundle.runtime import ShpackError

CONFIG_FILENAME = "shpack.yaml"

logger = logging.getLogger(__name__)


class ConfigError(ShpackError, ValueError):
    """`shpack.yaml` is malformed or holds invalid values."""


@dataclass(frozen=True)
class ProjectConfig:
    name: str = "mytool"
    entry: str = "scripts/main.sh"
    scripts: str = "scripts"
    version: str = "1.0.0"
    include: tuple[str, ...] = field(default=("*.sh",))
    output: str | None = None
    max_entry_size: int = DEFAULT_MAX_ENTRY_SIZE


_STR_KEYS = ("name", "entry", "scripts", "version")


def _coerce_str(value: Any, *, key: str) -> str:
    # YAML turns `version: 1.0` into a float; keep the text form.
    if isinstance(value, bool) or not isinstance(value, (str, int, float)):
        raise ConfigError(f"{CONFIG_FILENAME}: {key} must be a string, got {type(value).__name__}")
    return str(value).strip()


def config_from_dict(data: dict[str, Any]) -> ProjectConfig:
    """Map a parsed YAML mapping onto `ProjectConfig`, applying defaults."""
    known = {f.name for f in fields(ProjectConfig)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigError(f"{CONFIG_FILENAME}: unknown keys: {unknown}")

    cfg = ProjectConfig()
    updates: dict[str, Any] = {}
    for key in _STR_KEYS:
        value = data.get(key)
        if value is None:
            continue
        text = _coerce_str(value, key=key)
        if text:
            updates[key] = text

    include = data.get("include")
    if include is not None:
        if isinstance(include, str):
            include = [include]
        if not isinstance(include, list) or not all(isinstance(x, str) and x.strip() for x in include):
            raise ConfigError(f"{CONFIG_FILENAME}: include must be a list of glob patterns")
        if include:
            updates["include"] = tuple(x.strip() for x in include)

    output = data.get("output")
    if output is not None:
        text = _coerce_str(output, key="output")
        if text:
            updates["output"] = text

    max_size = data.get("max_entry_size")
    if max_size is not None:
        if isinstance(max_size, bool) or not isinstance(max_size, int) or max_size <= 0:
            raise ConfigError(f"{CONFIG_FILENAME}: max_entry_size must be a positive integer")
        updates["max_entry_size"] = max_size

    return replace(cfg, **updates)


def load_config(config_path: str | Path = CONFIG_FILENAME) -> ProjectConfig:
    """Load `shpack.yaml`, or return defaults when the file does not exist.

    Raises:
        ConfigError: if the file cannot be read or parsed.
    """
    config_file = Path(config_path)
    if not config_file.exists():
        logger.debug("%s not found, using defaults", config_file)
        return ProjectConfig()

    try:
        with open(config_file, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"failed to parse {config_file}: {e}") from e
    except OSError as e:
        raise ConfigError(f"failed to read {config_file}: {e}") from e

    if data is None:
        return ProjectConfig()
    if not isinstance(data, dict):
        raise ConfigError(f"{config_file}: expected a YAML mapping")
    return config_from_dict(data)


def sample_config_text(name: str = "mytool") -> str:
    return (
        f"name: {name}\n"
        "entry: scripts/main.sh\n"
        "scripts: scripts\n"
        "version: 1.0.0\n"
        "# Glob patterns (relative to `scripts`) of files to embed.\n"
        "include:\n"
        '  - "*.sh"\n'
    )
