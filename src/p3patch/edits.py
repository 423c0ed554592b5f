"""Edit scripts and the adapter around the two-sequence diff service.

File contents are handled as Latin-1 decoded strings: every byte becomes
exactly one character, so binary files diff and replay without loss.
"""

from __future__ import annotations

import difflib
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Mapping, Sequence, Tuple

from diff_match_patch import diff_match_patch

from .errors import ConfigurationError, EditScriptError
from .telemetry import emit_event

__all__ = [
    "DIFFERS",
    "Differ",
    "EditOp",
    "EditScript",
    "EditSpan",
    "compute_edit_script",
    "decode_bytes",
    "difflib_differ",
    "dmp_differ",
    "encode_text",
    "get_differ",
    "is_identity",
    "source_text",
    "target_text",
    "verify_edit_script",
]

LOGGER = logging.getLogger(__name__)

FILE_ENCODING = "latin-1"


class EditOp(str, Enum):
    """Kind of one edit-script span."""

    EQUAL = "equal"
    INSERT = "insert"
    DELETE = "delete"


@dataclass(frozen=True, slots=True)
class EditSpan:
    """Literal text tagged with the operation that produced it."""

    op: EditOp
    text: str


EditScript = Tuple[EditSpan, ...]
Differ = Callable[[str, str], EditScript]


def decode_bytes(data: bytes) -> str:
    return data.decode(FILE_ENCODING)


def encode_text(text: str) -> bytes:
    return text.encode(FILE_ENCODING)


def source_text(script: Sequence[EditSpan]) -> str:
    """Rebuild the baseline text from ``Equal`` and ``Delete`` spans."""
    return "".join(span.text for span in script if span.op is not EditOp.INSERT)


def target_text(script: Sequence[EditSpan]) -> str:
    """Rebuild the modified text from ``Equal`` and ``Insert`` spans."""
    return "".join(span.text for span in script if span.op is not EditOp.DELETE)


def is_identity(script: Sequence[EditSpan]) -> bool:
    """Return True when ``script`` copies the baseline unchanged."""
    return all(span.op is EditOp.EQUAL for span in script)


def _common_affixes(baseline: str, modified: str) -> tuple[int, int]:
    """Return the lengths of the shared prefix and the (non-overlapping) shared suffix."""
    limit = min(len(baseline), len(modified))
    prefix = 0
    while prefix < limit and baseline[prefix] == modified[prefix]:
        prefix += 1
    suffix = 0
    while suffix < limit - prefix and baseline[-1 - suffix] == modified[-1 - suffix]:
        suffix += 1
    return prefix, suffix


def difflib_differ(baseline: str, modified: str) -> EditScript:
    """Character-level diff backed by :class:`difflib.SequenceMatcher`.

    The shared prefix and suffix are emitted as ``Equal`` spans up front so
    the matcher only sees the changed middle.
    """
    prefix, suffix = _common_affixes(baseline, modified)
    base_middle = baseline[prefix : len(baseline) - suffix]
    modified_middle = modified[prefix : len(modified) - suffix]

    spans: list[EditSpan] = []
    if prefix:
        spans.append(EditSpan(EditOp.EQUAL, baseline[:prefix]))
    matcher = difflib.SequenceMatcher(None, base_middle, modified_middle, autojunk=False)
    for tag, i1, i2, j1, j2 in matcher.get_opcodes():
        if tag == "equal":
            spans.append(EditSpan(EditOp.EQUAL, base_middle[i1:i2]))
            continue
        if tag in ("delete", "replace"):
            spans.append(EditSpan(EditOp.DELETE, base_middle[i1:i2]))
        if tag in ("insert", "replace"):
            spans.append(EditSpan(EditOp.INSERT, modified_middle[j1:j2]))
    if suffix:
        spans.append(EditSpan(EditOp.EQUAL, baseline[len(baseline) - suffix :]))
    return tuple(spans)


_DMP_OPS = {
    diff_match_patch.DIFF_EQUAL: EditOp.EQUAL,
    diff_match_patch.DIFF_INSERT: EditOp.INSERT,
    diff_match_patch.DIFF_DELETE: EditOp.DELETE,
}


def dmp_differ(baseline: str, modified: str) -> EditScript:
    """Character-level diff backed by diff-match-patch, run without a deadline."""
    dmp = diff_match_patch()
    dmp.Diff_Timeout = 0
    return tuple(EditSpan(_DMP_OPS[op], text) for op, text in dmp.diff_main(baseline, modified) if text)


DIFFERS: Mapping[str, Differ] = {
    "diff-match-patch": dmp_differ,
    "difflib": difflib_differ,
}


def get_differ(name: str) -> Differ:
    try:
        return DIFFERS[name]
    except KeyError as error:
        raise ConfigurationError(f"Unknown differ {name!r}", details={"known": sorted(DIFFERS)}) from error


def verify_edit_script(script: Sequence[EditSpan], baseline: str, modified: str) -> bool:
    """Check both reconstruction invariants of ``script``."""
    return source_text(script) == baseline and target_text(script) == modified


def compute_edit_script(
    baseline: str,
    modified: str,
    *,
    is_text: bool,
    differ: Differ = dmp_differ,
    normalize_line_endings: bool = True,
) -> EditScript:
    """Diff ``baseline`` against ``modified`` and return the more compact script.

    For text baselines a second pass compares against ``modified`` with every
    carriage return removed; that script wins only with strictly fewer spans,
    and it then rebuilds the stripped text rather than ``modified``.
    """
    script = tuple(differ(baseline, modified))
    if not verify_edit_script(script, baseline, modified):
        raise EditScriptError(
            "Diff service returned an edit script that does not rebuild its inputs.",
            details={"spans": len(script)},
        )

    if len(script) <= 1 or not is_text or not normalize_line_endings:
        return script

    stripped = modified.replace("\r", "")
    if stripped == modified:
        return script

    candidate = tuple(differ(baseline, stripped))
    if not verify_edit_script(candidate, baseline, stripped):
        LOGGER.warning("Discarding line-ending normalised edit script that fails reconstruction.")
        emit_event("edit_script.candidate_rejected", spans=len(candidate))
        return script

    if len(candidate) < len(script):
        return candidate
    return script
