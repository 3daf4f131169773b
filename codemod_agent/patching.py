"""Strict unified-diff application for patchFile updates."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

from .errors import PatchApplicationError

logger = logging.getLogger(__name__)

_HUNK_HEADER = re.compile(r"^@@ -(\d+)(?:,(\d+))? \+(\d+)(?:,(\d+))? @@")


@dataclass
class Hunk:
    old_start: int
    old_lines: list[str] = field(default_factory=list)
    new_lines: list[str] = field(default_factory=list)


def parse_patch(patch: str) -> list[Hunk]:
    """Parse the hunks of a single-file unified diff."""
    hunks: list[Hunk] = []
    current: Hunk | None = None
    for line in patch.splitlines():
        if line.startswith(("--- ", "+++ ", "diff ", "index ")) and current is None:
            continue
        match = _HUNK_HEADER.match(line)
        if match:
            current = Hunk(old_start=int(match.group(1)))
            hunks.append(current)
            continue
        if current is None:
            continue
        if line.startswith("\\"):
            # "\ No newline at end of file"
            continue
        if line.startswith("-"):
            current.old_lines.append(line[1:])
        elif line.startswith("+"):
            current.new_lines.append(line[1:])
        elif line.startswith(" ") or line == "":
            current.old_lines.append(line[1:])
            current.new_lines.append(line[1:])
        else:
            raise PatchApplicationError(f"Malformed patch line: {line!r}")
    if not hunks:
        raise PatchApplicationError("Patch contains no hunks")
    return hunks


def _find(lines: list[str], needle: list[str], expected: int, start: int) -> int:
    """Index of `needle` in `lines` at or after `start`, closest to `expected`."""
    if not needle:
        return max(start, min(expected, len(lines)))
    last = len(lines) - len(needle)
    candidates = range(start, last + 1)
    for index in sorted(candidates, key=lambda i: abs(i - expected)):
        if lines[index : index + len(needle)] == needle:
            return index
    return -1


def apply_patch(content: str, patch: str, file_path: str | None = None) -> str:
    """
    Apply a unified diff to `content`.

    Hunks must match exactly; each may be found away from its declared line
    number but never before the end of the previous hunk.

    Raises:
        PatchApplicationError: If the patch is malformed or does not apply
    """
    try:
        hunks = parse_patch(patch)
    except PatchApplicationError as e:
        e.file_path = file_path
        raise

    trailing_newline = content.endswith("\n")
    lines = content.splitlines()
    result: list[str] = []
    cursor = 0
    for number, hunk in enumerate(hunks, 1):
        index = _find(lines, hunk.old_lines, hunk.old_start - 1, cursor)
        if index < 0:
            raise PatchApplicationError(f"Hunk {number} does not apply", file_path=file_path)
        result.extend(lines[cursor:index])
        result.extend(hunk.new_lines)
        cursor = index + len(hunk.old_lines)
    result.extend(lines[cursor:])

    logger.debug(f"Applied {len(hunks)} hunks to {file_path}")
    text = "\n".join(result)
    return text + "\n" if trailing_newline or (not content and text) else text


def patch_applies(content: str, patch: str) -> bool:
    try:
        apply_patch(content, patch)
    except PatchApplicationError:
        return False
    return True


__all__ = ["Hunk", "apply_patch", "parse_patch", "patch_applies"]
