"""Archive entry naming, manifest handling and ZIP access."""

from __future__ import annotations

import zipfile
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import Iterable, Tuple

from .errors import ConfigurationError, PatchFormatError, PatchPathError

__all__ = [
    "ArchiveEntryInfo",
    "ArchiveInfo",
    "Classification",
    "MANIFEST_ENTRY",
    "PatchArchiveWriter",
    "entry_name",
    "format_manifest",
    "inspect_archive",
    "iter_file_entries",
    "normalise_relative_path",
    "parse_entry_name",
    "parse_manifest",
    "read_manifest_version",
]

MANIFEST_ENTRY = "manifest"
BODY_ENCODING = "utf-8"


class Classification(str, Enum):
    """Outcome of comparing one modified file against the baseline."""

    SAME = "same"
    NEW = "new"
    DIFF = "diff"


def normalise_relative_path(raw: str) -> str:
    """Return ``raw`` as a safe relative POSIX path.

    Backslash separators written by Windows builds are accepted. Absolute
    paths and ``..`` components are rejected.
    """
    candidate = raw.replace("\\", "/")
    path = PurePosixPath(candidate)
    parts = [part for part in path.parts if part not in ("", ".")]
    if path.is_absolute() or not parts or ".." in parts or ":" in parts[0]:
        raise PatchPathError(f"Unsafe path in patch archive: {raw!r}")
    return "/".join(parts)


def entry_name(classification: Classification, relative_path: str) -> str:
    return f"{classification.value}/{normalise_relative_path(relative_path)}"


def parse_entry_name(name: str) -> tuple[Classification, str] | None:
    """Split an entry name into classification and modified-relative path.

    Returns None for names that carry no known classification prefix.
    """
    normalised = name.replace("\\", "/")
    prefix, sep, remainder = normalised.partition("/")
    if not sep:
        return None
    try:
        classification = Classification(prefix)
    except ValueError:
        return None
    return classification, normalise_relative_path(remainder)


def format_manifest(version: int) -> str:
    return f"version:{version}\n"


def parse_manifest(text: str) -> int:
    """Return the version declared by a manifest body."""
    for raw_line in text.splitlines():
        key, sep, value = raw_line.partition(":")
        if not sep or key.strip() != "version":
            continue
        value = value.strip()
        if not (value.isascii() and value.isdigit()):
            raise ConfigurationError(f"Invalid manifest version: {value!r}")
        return int(value)
    raise ConfigurationError("Manifest does not declare a version.")


def read_manifest_version(archive: zipfile.ZipFile) -> int:
    try:
        raw = archive.read(MANIFEST_ENTRY)
    except KeyError as error:
        raise ConfigurationError("Patch archive has no manifest entry.") from error
    try:
        text = raw.decode(BODY_ENCODING)
    except UnicodeDecodeError as error:
        raise ConfigurationError("Manifest is not valid UTF-8.") from error
    return parse_manifest(text)


class PatchArchiveWriter:
    """Write manifest and file entries into a new ZIP archive.

    Entries go to a hidden sibling file that replaces ``path`` only when the
    ``with`` block exits cleanly. A failed build removes the partial file and
    leaves any archive already at ``path`` untouched.
    """

    def __init__(self, path: Path | str, *, manifest_version: int) -> None:
        self.path = Path(path)
        self.partial_path = self.path.with_name(f".{self.path.name}.partial")
        self.manifest_version = manifest_version
        self._archive: zipfile.ZipFile | None = None
        self._names: set[str] = set()

    def __enter__(self) -> "PatchArchiveWriter":
        self._archive = zipfile.ZipFile(self.partial_path, "w", compression=zipfile.ZIP_DEFLATED)
        try:
            self._write(MANIFEST_ENTRY, format_manifest(self.manifest_version).encode(BODY_ENCODING))
        except BaseException:
            self._discard()
            raise
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is not None:
            self._discard()
            return
        if self._archive is not None:
            self._archive.close()
            self._archive = None
        try:
            self.partial_path.replace(self.path)
        except OSError:
            self.partial_path.unlink(missing_ok=True)
            raise

    def _discard(self) -> None:
        if self._archive is not None:
            try:
                self._archive.close()
            finally:
                self._archive = None
                self.partial_path.unlink(missing_ok=True)

    def write_text(self, classification: Classification, relative_path: str, text: str) -> str:
        return self.write_bytes(classification, relative_path, text.encode(BODY_ENCODING))

    def write_bytes(self, classification: Classification, relative_path: str, data: bytes) -> str:
        name = entry_name(classification, relative_path)
        self._write(name, data)
        return name

    def _write(self, name: str, data: bytes) -> None:
        if self._archive is None:
            raise RuntimeError("PatchArchiveWriter must be used as a context manager.")
        if name in self._names:
            raise PatchFormatError(f"Duplicate archive entry: {name}")
        self._names.add(name)
        self._archive.writestr(name, data)


@dataclass(slots=True)
class ArchiveEntryInfo:
    """Classification and size of one archive entry."""

    name: str
    classification: Classification
    relative_path: str
    size: int


@dataclass(slots=True)
class ArchiveInfo:
    """Summary of a patch archive produced by :func:`inspect_archive`."""

    path: Path
    manifest_version: int
    entries: list[ArchiveEntryInfo] = field(default_factory=list)
    unknown: list[str] = field(default_factory=list)

    def count(self, classification: Classification) -> int:
        return sum(1 for entry in self.entries if entry.classification is classification)

    @property
    def counts(self) -> Tuple[Tuple[Classification, int], ...]:
        return tuple((classification, self.count(classification)) for classification in Classification)


def iter_file_entries(archive: zipfile.ZipFile) -> Iterable[zipfile.ZipInfo]:
    for info in archive.infolist():
        if info.is_dir() or info.filename == MANIFEST_ENTRY:
            continue
        yield info


def inspect_archive(path: Path | str) -> ArchiveInfo:
    """List the entries of a patch archive without touching any baseline."""
    archive_path = Path(path)
    if not archive_path.is_file():
        raise PatchPathError(f"Patch archive not found: {archive_path}")
    try:
        archive = zipfile.ZipFile(archive_path, "r")
    except zipfile.BadZipFile as error:
        raise PatchFormatError(f"Not a patch archive: {archive_path}") from error
    with archive:
        info = ArchiveInfo(path=archive_path, manifest_version=read_manifest_version(archive))
        for member in iter_file_entries(archive):
            parsed = parse_entry_name(member.filename)
            if parsed is None:
                info.unknown.append(member.filename)
                continue
            classification, relative_path = parsed
            info.entries.append(
                ArchiveEntryInfo(
                    name=member.filename,
                    classification=classification,
                    relative_path=relative_path,
                    size=member.file_size,
                )
            )
    return info
