"""Exception hierarchy shared by the diff builder and the patch applier."""

from __future__ import annotations

from typing import Any, Mapping

__all__ = [
    "ConfigurationError",
    "EditScriptError",
    "P3PatchError",
    "PatchFormatError",
    "PatchPathError",
    "PatchStreamError",
]


class P3PatchError(RuntimeError):
    """Raised when a patch cannot be built or applied."""

    def __init__(self, message: str, *, details: Mapping[str, Any] | None = None) -> None:
        super().__init__(message)
        self.details: dict[str, Any] = dict(details or {})


class ConfigurationError(P3PatchError):
    """Application code, settings file or manifest is missing or invalid."""


class PatchPathError(P3PatchError):
    """An input or output path is missing, unsafe, or already occupied."""


class PatchFormatError(P3PatchError):
    """An archive entry does not follow the instruction format."""


class PatchStreamError(P3PatchError):
    """The baseline file ended before an instruction was satisfied."""


class EditScriptError(P3PatchError):
    """A differ returned spans that do not rebuild their inputs."""
