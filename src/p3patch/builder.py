"""Build a patch archive by comparing a baseline tree with a modified tree."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Tuple

from .archive import Classification, PatchArchiveWriter
from .codec import encode_diff_body
from .config import DEFAULT_SETTINGS, PatchSettings
from .edits import Differ, compute_edit_script, decode_bytes, get_differ, is_identity
from .errors import PatchPathError
from .filetypes import is_text, iter_tree_files
from .paths import find_app_code, map_to_baseline
from .telemetry import emit_event

__all__ = ["BuildSummary", "BuiltEntry", "PatchBuilder", "build_patch"]

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class BuiltEntry:
    """One file recorded in the archive."""

    classification: Classification
    relative_path: str
    baseline_relative_path: str | None = None
    instructions: int = 0


@dataclass(slots=True)
class BuildSummary:
    """Outcome of a diff build."""

    archive_path: Path
    baseline_app_code: str
    modified_app_code: str
    entries: list[BuiltEntry] = field(default_factory=list)

    def count(self, classification: Classification) -> int:
        return sum(1 for entry in self.entries if entry.classification is classification)

    @property
    def counts(self) -> Tuple[Tuple[Classification, int], ...]:
        return tuple((classification, self.count(classification)) for classification in Classification)


class PatchBuilder:
    """Walk the modified tree and classify each file against the baseline."""

    def __init__(
        self,
        baseline_root: Path | str,
        modified_root: Path | str,
        *,
        settings: PatchSettings = DEFAULT_SETTINGS,
        differ: Differ | None = None,
    ) -> None:
        self.baseline_root = Path(baseline_root)
        self.modified_root = Path(modified_root)
        self.settings = settings
        self.differ = differ if differ is not None else get_differ(settings.differ)

    @property
    def archive_path(self) -> Path:
        """``<modified_root><patch_extension>`` next to the modified tree."""
        root = self.modified_root.resolve()
        return root.with_name(root.name + self.settings.patch_extension)

    def build(self, archive_path: Path | str | None = None) -> BuildSummary:
        for label, root in (("Baseline", self.baseline_root), ("Modified", self.modified_root)):
            if not root.is_dir():
                raise PatchPathError(f"{label} directory not found: {root}")

        baseline_code = find_app_code(
            self.baseline_root / self.settings.app_config_path, self.settings.app_code_pattern
        )
        modified_code = find_app_code(
            self.modified_root / self.settings.app_config_path, self.settings.app_code_pattern
        )
        target = Path(archive_path) if archive_path is not None else self.archive_path
        LOGGER.info("Baseline AppCode=%s, modified AppCode=%s", baseline_code, modified_code)
        emit_event(
            "build.start",
            baseline_root=self.baseline_root,
            modified_root=self.modified_root,
            baseline_app_code=baseline_code,
            modified_app_code=modified_code,
            archive=target,
        )

        summary = BuildSummary(
            archive_path=target,
            baseline_app_code=baseline_code,
            modified_app_code=modified_code,
        )
        with PatchArchiveWriter(target, manifest_version=self.settings.manifest_version) as writer:
            own_files = {target.resolve(), writer.partial_path.resolve()}
            for path, relative_path in iter_tree_files(self.modified_root, self.settings):
                if path.resolve() in own_files:
                    continue
                entry = self._process_file(writer, path, relative_path, modified_code, baseline_code)
                summary.entries.append(entry)

        emit_event(
            "build.complete",
            archive=target,
            counts={classification.value: count for classification, count in summary.counts},
        )
        return summary

    def _process_file(
        self,
        writer: PatchArchiveWriter,
        path: Path,
        relative_path: str,
        modified_code: str,
        baseline_code: str,
    ) -> BuiltEntry:
        baseline_relative = map_to_baseline(relative_path, modified_code, baseline_code)
        baseline_path = self.baseline_root / baseline_relative
        modified_bytes = path.read_bytes()

        if not baseline_path.is_file():
            writer.write_bytes(Classification.NEW, relative_path, modified_bytes)
            entry = BuiltEntry(Classification.NEW, relative_path)
        else:
            baseline_bytes = baseline_path.read_bytes()
            script = compute_edit_script(
                decode_bytes(baseline_bytes),
                decode_bytes(modified_bytes),
                is_text=is_text(baseline_path, baseline_bytes, self.settings),
                differ=self.differ,
                normalize_line_endings=self.settings.normalize_line_endings,
            )
            if is_identity(script):
                writer.write_text(Classification.SAME, relative_path, baseline_relative)
                entry = BuiltEntry(Classification.SAME, relative_path, baseline_relative)
            else:
                writer.write_text(Classification.DIFF, relative_path, encode_diff_body(baseline_relative, script))
                entry = BuiltEntry(Classification.DIFF, relative_path, baseline_relative, len(script))

        LOGGER.info("%s %s", entry.classification.value, relative_path)
        emit_event(
            "build.entry",
            classification=entry.classification,
            path=relative_path,
            baseline_path=entry.baseline_relative_path,
            instructions=entry.instructions,
        )
        return entry


def build_patch(
    baseline_root: Path | str,
    modified_root: Path | str,
    *,
    settings: PatchSettings = DEFAULT_SETTINGS,
    archive_path: Path | str | None = None,
) -> BuildSummary:
    """Build ``<modified_root>.p3patch`` from the two trees."""
    return PatchBuilder(baseline_root, modified_root, settings=settings).build(archive_path)
