"""Tree walking and the text/binary heuristic."""

from __future__ import annotations

from pathlib import Path
from typing import Iterator

from .config import DEFAULT_SETTINGS, PatchSettings

__all__ = ["is_binary", "is_skipped", "is_text", "iter_tree_files"]

# Control bytes that still count as text.
_TEXT_CONTROL_BYTES = frozenset(b"\t\n\r")


def is_skipped(path: Path, settings: PatchSettings = DEFAULT_SETTINGS) -> bool:
    """Return True when ``path`` matches the deny-list of names or extensions."""
    name = path.name
    if name in settings.skipped_names:
        return True
    return name.endswith(tuple(settings.skipped_extensions))


def iter_tree_files(root: Path, settings: PatchSettings = DEFAULT_SETTINGS) -> Iterator[tuple[Path, str]]:
    """Yield ``(absolute_path, relative_posix_path)`` for every file under ``root``.

    Files of a directory come before its subdirectories, each group sorted by
    name, so archives are reproducible.
    """
    root = Path(root)

    def walk(directory: Path) -> Iterator[tuple[Path, str]]:
        children = sorted(directory.iterdir(), key=lambda child: child.name)
        subdirs: list[Path] = []
        for child in children:
            if is_skipped(child, settings):
                continue
            if child.is_dir():
                subdirs.append(child)
            elif child.is_file():
                yield child, child.relative_to(root).as_posix()
        for subdir in subdirs:
            yield from walk(subdir)

    yield from walk(root)


def is_binary(path: Path, content: bytes, settings: PatchSettings = DEFAULT_SETTINGS) -> bool:
    """Classify ``content`` as binary by extension or by stray control bytes."""
    if path.name.endswith(tuple(settings.binary_extensions)):
        return True
    return any(byte < 32 and byte not in _TEXT_CONTROL_BYTES for byte in content)


def is_text(path: Path, content: bytes, settings: PatchSettings = DEFAULT_SETTINGS) -> bool:
    if path.name.endswith(tuple(settings.text_extensions)):
        return True
    return not is_binary(path, content, settings)
