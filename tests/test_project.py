from __future__ import annotations

import os
import stat
from pathlib import Path

import pytest

from conftest import write_script
from shpack.build.driver import InputNotFoundError
from shpack.build.project import build_project, discover_scripts, init_project, make_folder
from shpack.bundle.runtime import read_bundle
from shpack.config import CONFIG_FILENAME


def _project(root: Path) -> Path:
    root.mkdir(parents=True, exist_ok=True)
    (root / CONFIG_FILENAME).write_text(
        "name: tool\nentry: scripts/main.sh\nscripts: scripts\nversion: 0.3.0\n", encoding="utf-8"
    )
    write_script(root / "scripts" / "main.sh", "echo main\n")
    write_script(root / "scripts" / "lib" / "util.sh", "echo util\n", mode=0o644)
    (root / "scripts" / "notes.txt").write_text("not a script\n", encoding="utf-8")
    return root


def test_discover_scripts_is_sorted_and_filtered(tmp_path: Path):
    root = _project(tmp_path)
    found = discover_scripts(root / "scripts", ["*.sh"])
    assert [p.relative_to(root / "scripts").as_posix() for p in found] == ["lib/util.sh", "main.sh"]


def test_build_project_defaults_to_build_dir(tmp_path: Path):
    root = _project(tmp_path)

    result = build_project(root)

    assert result.output == root / "build" / "tool"
    assert stat.S_IMODE(result.output.stat().st_mode) == 0o755
    m = read_bundle(result.output).manifest
    assert m.name == "tool"
    assert m.version == "0.3.0"
    assert m.entry_point == "main.sh"
    assert {e.name: e.mode for e in m.entries} == {"lib/util.sh": 0o755, "main.sh": 0o755}


def test_build_project_output_override(tmp_path: Path):
    root = _project(tmp_path / "proj")
    out = tmp_path / "dist" / "tool-bin"
    assert build_project(root, output=out).output == out
    assert out.is_file()


def test_build_project_includes_entry_outside_patterns(tmp_path: Path):
    root = _project(tmp_path)
    (root / CONFIG_FILENAME).write_text("name: tool\nentry: scripts/run\n", encoding="utf-8")
    write_script(root / "scripts" / "run", "echo run\n")

    m = build_project(root).manifest

    assert m.entry_point == "run"
    assert [e.name for e in m.entries] == ["run", "lib/util.sh", "main.sh"]


def test_build_project_missing_entry(tmp_path: Path):
    root = _project(tmp_path)
    (root / "scripts" / "main.sh").unlink()
    with pytest.raises(InputNotFoundError, match=r"entry script not found: scripts/main\.sh"):
        build_project(root)


def test_build_project_missing_scripts_dir(tmp_path: Path):
    with pytest.raises(InputNotFoundError, match=r"scripts directory not found"):
        build_project(tmp_path)


def test_make_folder_names_tool_after_folder(tmp_path: Path):
    folder = tmp_path / "mytools"
    write_script(folder / "main.sh", "echo hi\n", mode=0o644)
    write_script(folder / "sub" / "x.sh", "echo x\n")
    out_dir = tmp_path / "bin"

    result = make_folder(folder, output_dir=out_dir)

    assert result.output == out_dir / "mytools"
    assert result.manifest.name == "mytools"
    assert result.manifest.entry_point == "main.sh"
    assert [e.name for e in result.manifest.entries] == ["main.sh", "sub/x.sh"]


def test_make_folder_requires_main_sh(tmp_path: Path):
    write_script(tmp_path / "other.sh", "echo other\n")
    with pytest.raises(InputNotFoundError, match=r"no main\.sh found"):
        make_folder(tmp_path, output_dir=tmp_path)


def test_make_folder_missing_folder(tmp_path: Path):
    with pytest.raises(InputNotFoundError, match=r"folder does not exist"):
        make_folder(tmp_path / "nope")


def test_init_project_scaffolds_and_builds(tmp_path: Path):
    root = tmp_path / "newproject"

    created = init_project(root)

    assert sorted(p.relative_to(root).as_posix() for p in created) == ["scripts/main.sh", "shpack.yaml"]
    assert (root / "build").is_dir()
    assert os.access(root / "scripts" / "main.sh", os.X_OK)
    result = build_project(root)
    assert result.manifest.name == "newproject"


def test_init_project_keeps_existing_files(tmp_path: Path):
    (tmp_path / CONFIG_FILENAME).write_text("name: keep\n", encoding="utf-8")

    created = init_project(tmp_path)

    assert [p.name for p in created] == ["main.sh"]
    assert (tmp_path / CONFIG_FILENAME).read_text(encoding="utf-8") == "name: keep\n"
