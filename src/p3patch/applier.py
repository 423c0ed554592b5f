"""Recreate a modified tree from the baseline tree and a patch archive."""

from __future__ import annotations

import io
import logging
import shutil
import zipfile
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO, Iterable, Iterator, Tuple

from .archive import (
    BODY_ENCODING,
    Classification,
    iter_file_entries,
    normalise_relative_path,
    parse_entry_name,
    read_manifest_version,
)
from .codec import Instruction, iter_instructions
from .config import DEFAULT_SETTINGS, PatchSettings
from .edits import EditOp, encode_text
from .errors import ConfigurationError, PatchFormatError, PatchPathError, PatchStreamError
from .telemetry import emit_event

__all__ = ["AppliedEntry", "ApplySummary", "PatchApplier", "apply_patch", "replay_instructions"]

LOGGER = logging.getLogger(__name__)

_CHUNK_SIZE = 64 * 1024


@dataclass(slots=True)
class AppliedEntry:
    """One file written to the output tree."""

    classification: Classification
    relative_path: str
    baseline_relative_path: str | None = None


@dataclass(slots=True)
class ApplySummary:
    """Outcome of applying a patch archive."""

    output_root: Path
    manifest_version: int
    entries: list[AppliedEntry] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)

    def count(self, classification: Classification) -> int:
        return sum(1 for entry in self.entries if entry.classification is classification)

    @property
    def counts(self) -> Tuple[Tuple[Classification, int], ...]:
        return tuple((classification, self.count(classification)) for classification in Classification)


def _transfer(source: BinaryIO, output: BinaryIO | None, count: int, source_name: str) -> None:
    """Move exactly ``count`` bytes from ``source`` to ``output`` (or discard them)."""
    remaining = count
    while remaining > 0:
        chunk = source.read(min(remaining, _CHUNK_SIZE))
        if not chunk:
            raise PatchStreamError(
                f"Unexpected EOF reading {source_name}",
                details={"requested": count, "missing": remaining},
            )
        if output is not None:
            output.write(chunk)
        remaining -= len(chunk)


def replay_instructions(
    instructions: Iterable[Instruction],
    baseline: BinaryIO,
    output: BinaryIO,
    *,
    baseline_name: str = "baseline",
) -> int:
    """Apply ``instructions`` to the ``baseline`` stream, writing to ``output``.

    Returns the number of instructions replayed.
    """
    replayed = 0
    for instruction in instructions:
        if instruction.op is EditOp.EQUAL:
            _transfer(baseline, output, instruction.count, baseline_name)
        elif instruction.op is EditOp.DELETE:
            _transfer(baseline, None, instruction.count, baseline_name)
        else:
            try:
                data = encode_text(instruction.text)
            except UnicodeEncodeError as error:
                raise PatchFormatError("Inserted text contains characters outside a single byte.") from error
            output.write(data)
        replayed += 1
    return replayed


@contextmanager
def _output_file(path: Path) -> Iterator[BinaryIO]:
    """Open ``path`` for writing and remove it again if writing fails."""
    path.parent.mkdir(parents=True, exist_ok=True)
    try:
        with path.open("wb") as handle:
            yield handle
    except Exception:
        path.unlink(missing_ok=True)
        raise


class PatchApplier:
    """Replay a patch archive against a baseline tree."""

    def __init__(
        self,
        baseline_root: Path | str,
        patch_path: Path | str,
        *,
        output_root: Path | str | None = None,
        settings: PatchSettings = DEFAULT_SETTINGS,
    ) -> None:
        self.baseline_root = Path(baseline_root)
        self.patch_path = Path(patch_path)
        self.settings = settings
        self._output_root = Path(output_root) if output_root is not None else None

    @property
    def output_root(self) -> Path:
        """Explicit output directory, else the patch path without its extension."""
        if self._output_root is not None:
            return self._output_root
        extension = self.settings.patch_extension
        name = self.patch_path.name
        if not name.endswith(extension) or name == extension:
            raise PatchPathError(f"Expecting a patch archive ending with {extension}: {self.patch_path}")
        return self.patch_path.with_name(name[: -len(extension)])

    def apply(self) -> ApplySummary:
        output_root = self.output_root
        if not self.baseline_root.is_dir():
            raise PatchPathError(f"Baseline directory not found: {self.baseline_root}")
        if not self.patch_path.is_file():
            raise PatchPathError(f"Patch archive not found: {self.patch_path}")
        if output_root.is_file():
            raise PatchPathError(f"A file already exists at {output_root}")
        if output_root.exists():
            raise PatchPathError(f"Output directory already exists: {output_root}")

        try:
            archive = zipfile.ZipFile(self.patch_path, "r")
        except zipfile.BadZipFile as error:
            raise PatchFormatError(f"Not a patch archive: {self.patch_path}") from error

        with archive:
            version = read_manifest_version(archive)
            if version not in self.settings.supported_manifest_versions:
                raise ConfigurationError(
                    f"Unsupported patch version {version}",
                    details={"supported": list(self.settings.supported_manifest_versions)},
                )
            LOGGER.info("Applying %s to %s", self.patch_path, self.baseline_root)
            emit_event(
                "apply.start",
                baseline_root=self.baseline_root,
                patch=self.patch_path,
                output_root=output_root,
                version=version,
            )
            output_root.mkdir(parents=True)
            summary = ApplySummary(output_root=output_root, manifest_version=version)
            for info in iter_file_entries(archive):
                parsed = parse_entry_name(info.filename)
                if parsed is None:
                    LOGGER.warning("Unexpected archive entry: %s", info.filename)
                    summary.skipped.append(info.filename)
                    continue
                summary.entries.append(self._apply_entry(archive, info, *parsed))

        emit_event(
            "apply.complete",
            output_root=output_root,
            counts={classification.value: count for classification, count in summary.counts},
            skipped=summary.skipped,
        )
        return summary

    def _apply_entry(
        self,
        archive: zipfile.ZipFile,
        info: zipfile.ZipInfo,
        classification: Classification,
        relative_path: str,
    ) -> AppliedEntry:
        destination = self.output_root / relative_path
        baseline_relative: str | None = None
        if classification is Classification.SAME:
            baseline_relative = self._apply_same(archive, info, destination)
        elif classification is Classification.NEW:
            self._apply_new(archive, info, destination)
        else:
            baseline_relative = self._apply_diff(archive, info, destination)

        LOGGER.info("%s %s", classification.value, relative_path)
        emit_event("apply.entry", classification=classification, path=relative_path, baseline_path=baseline_relative)
        return AppliedEntry(classification, relative_path, baseline_relative)

    def _baseline_file(self, raw: str) -> tuple[str, Path]:
        relative = normalise_relative_path(raw.rstrip("\r\n"))
        path = self.baseline_root / relative
        if not path.is_file():
            raise PatchPathError(f"Baseline file not found: {path}", details={"baseline_path": relative})
        return relative, path

    def _apply_same(self, archive: zipfile.ZipFile, info: zipfile.ZipInfo, destination: Path) -> str:
        try:
            raw = archive.read(info).decode(BODY_ENCODING)
        except UnicodeDecodeError as error:
            raise PatchFormatError(f"Entry {info.filename} is not valid UTF-8") from error
        relative, source = self._baseline_file(raw)
        destination.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(source, destination)
        return relative

    def _apply_new(self, archive: zipfile.ZipFile, info: zipfile.ZipInfo, destination: Path) -> None:
        with archive.open(info) as source, _output_file(destination) as output:
            shutil.copyfileobj(source, output, _CHUNK_SIZE)

    def _apply_diff(self, archive: zipfile.ZipFile, info: zipfile.ZipInfo, destination: Path) -> str:
        try:
            with archive.open(info) as raw, io.TextIOWrapper(raw, encoding=BODY_ENCODING) as body:
                first_line = body.readline()
                if not first_line:
                    raise PatchFormatError(f"Diff entry {info.filename} is empty")
                relative, source_path = self._baseline_file(first_line)
                with source_path.open("rb") as baseline, _output_file(destination) as output:
                    replay_instructions(
                        iter_instructions(body),
                        baseline,
                        output,
                        baseline_name=source_path.as_posix(),
                    )
        except UnicodeDecodeError as error:
            raise PatchFormatError(f"Entry {info.filename} is not valid UTF-8") from error
        return relative


def apply_patch(
    baseline_root: Path | str,
    patch_path: Path | str,
    *,
    output_root: Path | str | None = None,
    settings: PatchSettings = DEFAULT_SETTINGS,
) -> ApplySummary:
    """Recreate the modified tree described by ``patch_path``."""
    return PatchApplier(baseline_root, patch_path, output_root=output_root, settings=settings).apply()
