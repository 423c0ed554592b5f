"""Build and apply patch archives against a baseline project tree."""

from .applier import ApplySummary, PatchApplier, apply_patch
from .archive import Classification, inspect_archive
from .builder import BuildSummary, PatchBuilder, build_patch
from .config import PatchSettings, load_settings
from .errors import (
    ConfigurationError,
    EditScriptError,
    P3PatchError,
    PatchFormatError,
    PatchPathError,
    PatchStreamError,
)

__all__ = [
    "ApplySummary",
    "BuildSummary",
    "Classification",
    "ConfigurationError",
    "EditScriptError",
    "P3PatchError",
    "PatchApplier",
    "PatchBuilder",
    "PatchFormatError",
    "PatchPathError",
    "PatchSettings",
    "PatchStreamError",
    "apply_patch",
    "build_patch",
    "inspect_archive",
    "load_settings",
]
