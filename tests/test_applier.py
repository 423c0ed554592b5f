from __future__ import annotations

import io
import zipfile
from pathlib import Path
from typing import Mapping

import pytest

from p3patch.applier import PatchApplier, apply_patch, replay_instructions
from p3patch.archive import Classification
from p3patch.builder import build_patch
from p3patch.codec import iter_instructions
from p3patch.errors import (
    ConfigurationError,
    PatchFormatError,
    PatchPathError,
    PatchStreamError,
)

from conftest import SdkTrees, write_tree


def _write_archive(path: Path, entries: Mapping[str, bytes | str]) -> Path:
    with zipfile.ZipFile(path, "w") as archive:
        for name, body in entries.items():
            archive.writestr(name, body)
    return path


def _tree_bytes(root: Path) -> dict[str, bytes]:
    return {
        path.relative_to(root).as_posix(): path.read_bytes()
        for path in sorted(root.rglob("*"))
        if path.is_file()
    }


def _replay(baseline: bytes, lines: list[str]) -> bytes:
    output = io.BytesIO()
    replay_instructions(iter_instructions(lines), io.BytesIO(baseline), output)
    return output.getvalue()


def test_replay_instructions_rebuilds_modified_text() -> None:
    assert _replay(b"ABCDEF", ["=2", "-1", "+X", "=3"]) == b"ABXDEF"


def test_replay_instructions_raises_on_exhausted_baseline() -> None:
    with pytest.raises(PatchStreamError, match="Unexpected EOF"):
        _replay(b"ABCDE", ["=10"])


def test_replay_instructions_raises_when_deleting_past_end() -> None:
    with pytest.raises(PatchStreamError):
        _replay(b"AB", ["-3"])


def test_replay_instructions_writes_latin1_bytes() -> None:
    assert _replay(b"", ["+\xe9\\r\\n\x00"]) == b"\xe9\r\n\x00"


def test_round_trip_reconstructs_modified_tree(sdk_trees: SdkTrees) -> None:
    binary_baseline = bytes(range(256)) * 4
    binary_modified = binary_baseline[:300] + b"\x00\xff\r\n\\" + binary_baseline[310:]
    sdk_trees.add_baseline(
        {
            "Assets/Scripts/P3SAMode.cs": "using P3;\nclass P3SAMode {}\n",
            "Assets/Scripts/Shared.cs": "ABCDEF",
            "Assets/Audio/theme.ogg": binary_baseline,
            "Assets/Text/blank.txt": "",
            "Assets/Text/removed.txt": "all of this goes away\n",
            "Assets/Text/unicode.txt": "caf\xc3\xa9\n".encode("latin-1"),
        }
    )
    sdk_trees.add_modified(
        {
            "Assets/Scripts/EGMode.cs": "using P3;\nclass EGMode : Base {}\n",
            "Assets/Scripts/Shared.cs": "ABXDEF",
            "Assets/Audio/theme.ogg": binary_modified,
            "Assets/Text/blank.txt": "now has text\\n with a literal backslash-n\n",
            "Assets/Text/removed.txt": "",
            "Assets/Text/unicode.txt": "na\xc3\xafve caf\xc3\xa9\n".encode("latin-1"),
            "Assets/Textures/new.png": b"\x89PNG\r\n\x1a\n\x00\x00",
            "Assets/Empty/empty.bin": b"",
        }
    )

    build_patch(sdk_trees.baseline, sdk_trees.modified)
    output = sdk_trees.root / "Rebuilt"
    summary = apply_patch(sdk_trees.baseline, sdk_trees.patch_path, output_root=output)

    assert summary.manifest_version == 1
    assert _tree_bytes(output) == _tree_bytes(sdk_trees.modified)
    assert summary.count(Classification.NEW) == 2


def test_apply_patch_defaults_to_patch_path_without_extension(sdk_trees: SdkTrees) -> None:
    sdk_trees.add_modified({"Assets/Game.cs": "class Game {}\n"})
    build_patch(sdk_trees.baseline, sdk_trees.modified)
    original = _tree_bytes(sdk_trees.modified)
    relocated = sdk_trees.root / "original-modified"
    sdk_trees.modified.rename(relocated)

    summary = apply_patch(sdk_trees.baseline, sdk_trees.patch_path)

    assert summary.output_root == sdk_trees.modified
    assert _tree_bytes(sdk_trees.modified) == original


def test_apply_patch_refuses_existing_output_directory(sdk_trees: SdkTrees) -> None:
    build_patch(sdk_trees.baseline, sdk_trees.modified)

    with pytest.raises(PatchPathError, match="already exists"):
        apply_patch(sdk_trees.baseline, sdk_trees.patch_path)


def test_apply_patch_refuses_file_at_output_path(sdk_trees: SdkTrees, tmp_path: Path) -> None:
    patch = _write_archive(tmp_path / "Game.p3patch", {"manifest": "version:1\n"})
    (tmp_path / "Game").write_text("occupied", encoding="utf-8")

    with pytest.raises(PatchPathError, match="A file already exists"):
        apply_patch(sdk_trees.baseline, patch)


def test_apply_patch_requires_patch_extension(sdk_trees: SdkTrees, tmp_path: Path) -> None:
    patch = _write_archive(tmp_path / "Game.zip", {"manifest": "version:1\n"})

    with pytest.raises(PatchPathError, match="Expecting a patch archive"):
        apply_patch(sdk_trees.baseline, patch)


@pytest.mark.parametrize(
    "entries",
    [
        {"new/a.txt": "a"},
        {"manifest": "version:2\n"},
        {"manifest": "hello\n"},
    ],
)
def test_apply_patch_validates_manifest(sdk_trees: SdkTrees, tmp_path: Path, entries) -> None:
    patch = _write_archive(tmp_path / "Game.p3patch", entries)

    with pytest.raises(ConfigurationError):
        apply_patch(sdk_trees.baseline, patch)
    assert not (tmp_path / "Game").exists()


def test_apply_patch_stream_error_leaves_no_partial_file(sdk_trees: SdkTrees, tmp_path: Path) -> None:
    write_tree(sdk_trees.baseline, {"Assets/short.txt": "ABCDE"})
    patch = _write_archive(
        tmp_path / "Game.p3patch",
        {"manifest": "version:1\n", "diff/Assets/short.txt": "Assets/short.txt\n=10\n"},
    )

    with pytest.raises(PatchStreamError):
        apply_patch(sdk_trees.baseline, patch)
    assert not (tmp_path / "Game" / "Assets" / "short.txt").exists()


def test_apply_patch_rejects_bad_instruction(sdk_trees: SdkTrees, tmp_path: Path) -> None:
    write_tree(sdk_trees.baseline, {"Assets/a.txt": "abc"})
    patch = _write_archive(
        tmp_path / "Game.p3patch",
        {"manifest": "version:1\n", "diff/Assets/a.txt": "Assets/a.txt\n=1\n+bad\\q\n"},
    )

    with pytest.raises(PatchFormatError):
        apply_patch(sdk_trees.baseline, patch)
    assert not (tmp_path / "Game" / "Assets" / "a.txt").exists()


def test_apply_patch_requires_baseline_for_same_entry(sdk_trees: SdkTrees, tmp_path: Path) -> None:
    patch = _write_archive(
        tmp_path / "Game.p3patch",
        {"manifest": "version:1\n", "same/Assets/gone.cs": "Assets/gone.cs"},
    )

    with pytest.raises(PatchPathError, match="Baseline file not found"):
        apply_patch(sdk_trees.baseline, patch)


@pytest.mark.parametrize(
    "entries",
    [
        {"manifest": "version:1\n", "new/../escape.txt": "x"},
        {"manifest": "version:1\n", "same/Assets/a.txt": "../outside.txt"},
        {"manifest": "version:1\n", "diff/Assets/a.txt": "/etc/passwd\n=1\n"},
    ],
)
def test_apply_patch_rejects_unsafe_paths(sdk_trees: SdkTrees, tmp_path: Path, entries) -> None:
    patch = _write_archive(tmp_path / "Game.p3patch", entries)

    with pytest.raises(PatchPathError, match="Unsafe path"):
        apply_patch(sdk_trees.baseline, patch)
    assert not (tmp_path / "escape.txt").exists()


def test_apply_patch_accepts_windows_separators(sdk_trees: SdkTrees, tmp_path: Path) -> None:
    write_tree(sdk_trees.baseline, {"Assets/Scripts/P3SAMode.cs": "ABCDEF"})
    patch = _write_archive(
        tmp_path / "Game.p3patch",
        {
            "manifest": "version:1\n",
            "same\\Assets\\Scripts\\EGMode.cs": "Assets\\Scripts\\P3SAMode.cs",
            "diff\\Assets\\Scripts\\EGOther.cs": "Assets\\Scripts\\P3SAMode.cs\r\n=2\r\n-1\r\n+X\r\n=3\r\n",
        },
    )

    apply_patch(sdk_trees.baseline, patch)

    scripts = tmp_path / "Game" / "Assets" / "Scripts"
    assert (scripts / "EGMode.cs").read_bytes() == b"ABCDEF"
    assert (scripts / "EGOther.cs").read_bytes() == b"ABXDEF"


def test_apply_patch_skips_unknown_entries(sdk_trees: SdkTrees, tmp_path: Path) -> None:
    patch = _write_archive(
        tmp_path / "Game.p3patch",
        {"manifest": "version:1\n", "notes.txt": "hi", "new/a.txt": "a"},
    )

    summary = PatchApplier(sdk_trees.baseline, patch).apply()

    assert summary.skipped == ["notes.txt"]
    assert (tmp_path / "Game" / "a.txt").read_bytes() == b"a"
