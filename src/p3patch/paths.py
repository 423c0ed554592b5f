"""Mapping between modified and baseline file names."""

from __future__ import annotations

import re
from pathlib import Path

from .errors import ConfigurationError

__all__ = ["find_app_code", "map_to_baseline"]


def map_to_baseline(modified_relative_path: str, modified_app_code: str, baseline_app_code: str) -> str:
    """Return the baseline-relative path matching ``modified_relative_path``.

    Only a leading occurrence of ``modified_app_code`` in the file name is
    replaced; directory components are kept verbatim. Paths use ``/``.
    """
    directory, sep, filename = modified_relative_path.rpartition("/")
    if modified_app_code and filename.startswith(modified_app_code):
        filename = baseline_app_code + filename[len(modified_app_code) :]
    return f"{directory}{sep}{filename}"


def find_app_code(config_path: Path | str, pattern: str = r'"Name": "(\w+)"') -> str:
    """Extract the application code from a project configuration file."""
    path = Path(config_path)
    try:
        contents = path.read_text(encoding="latin-1")
    except OSError as error:
        raise ConfigurationError(f"Cannot read AppCode file {path}: {error}") from error

    match = re.search(pattern, contents)
    if match is None:
        raise ConfigurationError(f"Cannot find AppCode in {path}", details={"pattern": pattern})
    return match.group(1)
