from __future__ import annotations

import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))


def write_tree(root: Path, files: Mapping[str, bytes | str]) -> None:
    """Create ``files`` (relative POSIX path -> content) under ``root``."""
    for relative, content in files.items():
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, str):
            path.write_bytes(content.encode("latin-1"))
        else:
            path.write_bytes(content)


def app_config(app_code: str) -> str:
    return '{\n  "Name": "%s",\n  "Version": "0.8"\n}\n' % app_code


@dataclass(slots=True)
class SdkTrees:
    """Baseline and modified project trees under a temporary directory."""

    root: Path
    baseline: Path
    modified: Path

    def add_baseline(self, files: Mapping[str, bytes | str]) -> None:
        write_tree(self.baseline, files)

    def add_modified(self, files: Mapping[str, bytes | str]) -> None:
        write_tree(self.modified, files)

    @property
    def patch_path(self) -> Path:
        return self.modified.with_name(self.modified.name + ".p3patch")


@pytest.fixture()
def sdk_trees(tmp_path: Path) -> SdkTrees:
    """A ``P3SampleApp`` baseline and an ``EmptyGame`` derivative with app configs."""

    baseline = tmp_path / "P3SampleApp"
    modified = tmp_path / "EmptyGame"
    write_tree(baseline, {"Configuration/AppConfig.json": app_config("P3SA")})
    write_tree(modified, {"Configuration/AppConfig.json": app_config("EG")})
    return SdkTrees(root=tmp_path, baseline=baseline, modified=modified)
