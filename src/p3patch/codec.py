"""Line-oriented instruction format for ``diff`` archive entries.

A diff entry body holds the baseline-relative path on its first line, then
one instruction per line::

    =NNN          copy NNN characters from the baseline
    -NNN          skip NNN baseline characters, deleting them
    +quotedText   insert the unquoted text

Quoting replaces ``\\`` by ``\\\\``, newline by ``\\n`` and carriage return by
``\\r`` so an instruction never spans more than one line.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Iterator, Sequence

from .edits import EditOp, EditSpan
from .errors import PatchFormatError

__all__ = [
    "Instruction",
    "encode_diff_body",
    "encode_instructions",
    "iter_instructions",
    "parse_instruction",
    "quote_text",
    "unquote_text",
]

_PREFIXES = {"=": EditOp.EQUAL, "-": EditOp.DELETE, "+": EditOp.INSERT}
_QUOTES = {"\\": "\\\\", "\n": "\\n", "\r": "\\r"}
_UNQUOTES = {"\\": "\\", "n": "\n", "r": "\r"}


@dataclass(frozen=True, slots=True)
class Instruction:
    """One decoded step of a diff entry body."""

    op: EditOp
    count: int = 0
    text: str = ""


def quote_text(text: str) -> str:
    return "".join(_QUOTES.get(ch, ch) for ch in text)


def unquote_text(text: str) -> str:
    """Invert :func:`quote_text`, rejecting unknown or dangling escapes."""
    parts: list[str] = []
    escaping = False
    for ch in text:
        if escaping:
            escaping = False
            replacement = _UNQUOTES.get(ch)
            if replacement is None:
                raise PatchFormatError(f"Unexpected escape sequence: \\{ch}")
            parts.append(replacement)
        elif ch == "\\":
            escaping = True
        else:
            parts.append(ch)
    if escaping:
        raise PatchFormatError("Invalid escape at end of text")
    return "".join(parts)


def encode_instructions(script: Sequence[EditSpan]) -> list[str]:
    """Serialise ``script`` into instruction lines without terminators."""
    lines: list[str] = []
    for span in script:
        if span.op is EditOp.INSERT:
            lines.append("+" + quote_text(span.text))
        elif span.op is EditOp.EQUAL:
            lines.append(f"={len(span.text)}")
        else:
            lines.append(f"-{len(span.text)}")
    return lines


def encode_diff_body(baseline_relative_path: str, script: Sequence[EditSpan]) -> str:
    """Return the full text of a ``diff`` entry."""
    lines = [baseline_relative_path, *encode_instructions(script)]
    return "".join(f"{line}\n" for line in lines)


def _strip_terminator(line: str) -> str:
    if line.endswith("\n"):
        line = line[:-1]
    if line.endswith("\r"):
        line = line[:-1]
    return line


def _parse_count(line: str) -> int:
    digits = line[1:]
    if not digits or not digits.isascii() or not digits.isdigit():
        raise PatchFormatError(f"Invalid instruction count: {line!r}")
    return int(digits)


def parse_instruction(line: str) -> Instruction:
    """Decode one instruction line; a trailing ``\\n`` or ``\\r\\n`` is ignored."""
    line = _strip_terminator(line)
    if not line:
        raise PatchFormatError("Empty instruction line")

    op = _PREFIXES.get(line[0])
    if op is None:
        raise PatchFormatError(f"Unexpected diff operation: {line[0]!r}")
    if op is EditOp.INSERT:
        return Instruction(op, text=unquote_text(line[1:]))
    return Instruction(op, count=_parse_count(line))


def iter_instructions(lines: Iterable[str]) -> Iterator[Instruction]:
    """Lazily decode instruction lines."""
    for line in lines:
        yield parse_instruction(line)
