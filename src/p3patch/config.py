"""Settings for the diff builder and patch applier.

Every table the tools consult (skipped names, text and binary extensions,
the application-code lookup) lives here so a YAML file can extend it without
touching the tree walk or the classifier.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal, Mapping, Tuple

import yaml
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from .errors import ConfigurationError

__all__ = ["DEFAULT_SETTINGS", "PatchSettings", "load_settings"]

SETTINGS_SECTION = "p3patch"


class PatchSettings(BaseModel):
    """Validated settings with the defaults used by the SDK tooling."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    patch_extension: str = ".p3patch"
    manifest_version: int = 1
    supported_manifest_versions: Tuple[int, ...] = (1,)
    app_config_path: str = "Configuration/AppConfig.json"
    app_code_pattern: str = r'"Name": "(\w+)"'
    skipped_names: Tuple[str, ...] = (".git", "Documentation", "Library", "obj", "Temp", ".vs")
    skipped_extensions: Tuple[str, ...] = (".sln", ".csproj")
    text_extensions: Tuple[str, ...] = (".cs", ".meta")
    binary_extensions: Tuple[str, ...] = (
        ".ogg",
        ".wav",
        ".sfk",
        ".mp3",
        ".png",
        ".zip",
        ".ttf",
        ".tif",
        ".so",
        ".dylib",
        ".dll",
        ".tga",
        ".jpg",
        ".psd",
    )
    normalize_line_endings: bool = True
    differ: Literal["diff-match-patch", "difflib"] = "diff-match-patch"

    @field_validator("patch_extension")
    @classmethod
    def _require_dot(cls, value: str) -> str:
        value = value.strip()
        if not value.startswith(".") or len(value) < 2:
            raise ValueError("patch_extension must start with '.' and name an extension")
        return value

    @field_validator("skipped_extensions", "text_extensions", "binary_extensions")
    @classmethod
    def _normalise_extensions(cls, value: Tuple[str, ...]) -> Tuple[str, ...]:
        normalised: list[str] = []
        for entry in value:
            cleaned = entry.strip()
            if not cleaned:
                continue
            if not cleaned.startswith("."):
                cleaned = "." + cleaned
            normalised.append(cleaned)
        return tuple(normalised)


DEFAULT_SETTINGS = PatchSettings()


def load_settings(path: Path | str | None = None) -> PatchSettings:
    """Load YAML settings from ``path``; return the defaults when ``path`` is None."""
    if path is None:
        return DEFAULT_SETTINGS

    config_path = Path(path)
    if not config_path.exists():
        raise ConfigurationError(f"Config file not found: {config_path}")

    try:
        with config_path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    except yaml.YAMLError as error:
        raise ConfigurationError(f"Failed to parse config: {error}") from error

    if not isinstance(data, Mapping):
        raise ConfigurationError("Configuration must be a mapping at the top level.")

    section: Any = data.get(SETTINGS_SECTION, data)
    if not isinstance(section, Mapping):
        raise ConfigurationError(f"'{SETTINGS_SECTION}' section must be a mapping.")

    try:
        return PatchSettings.model_validate(dict(section))
    except ValidationError as error:
        raise ConfigurationError(
            f"Invalid settings in {config_path}",
            details={"errors": error.errors(include_url=False)},
        ) from error
