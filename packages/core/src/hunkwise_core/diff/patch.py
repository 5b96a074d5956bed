"""Unified-diff decomposition into line-numbered hunks.

The LLM never sees raw diff syntax. Each hunk is rendered as two blocks: the
new side, where most lines carry a ``"<line>: "`` prefix so the model can cite
precise ranges, and the old side, unnumbered, for context on what was removed.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

logger = logging.getLogger(__name__)

_HUNK_HEADER_RE = re.compile(r"^@@ -(\d+),(\d+) \+(\d+),(\d+) @@", re.MULTILINE)

# Context lines this close to either edge of a hunk stay unnumbered so the
# model does not anchor comments on boundary noise.
_SKIP_START = 3
_SKIP_END = 3


@dataclass(frozen=True)
class LineRange:
    start: int
    end: int


@dataclass(frozen=True)
class HunkRange:
    old: LineRange
    new: LineRange


@dataclass(frozen=True)
class Hunk:
    """One contiguous change region of a file's diff, ready for a prompt."""

    old_start: int
    old_end: int
    new_start: int
    new_end: int
    old_text: str
    new_text: str

    def to_prompt_block(self) -> str:
        return f"""
---new_hunk---
```
{self.new_text}
```

---old_hunk---
```
{self.old_text}
```
"""


def split_patch(patch: str | None) -> list[str]:
    """Split a file patch into per-hunk substrings.

    Each substring starts at a ``@@ -a,b +c,d @@`` header and runs up to the
    next header (or the end of the text), so joining the result gives back the
    patch from its first header onwards.
    """
    if not patch:
        return []

    starts = [m.start() for m in _HUNK_HEADER_RE.finditer(patch)]
    if not starts:
        return []
    bounds = starts[1:] + [len(patch)]
    return [patch[begin:end] for begin, end in zip(starts, bounds)]


def patch_start_end_line(hunk_text: str) -> HunkRange | None:
    """Parse the old/new line ranges out of a hunk header, or None."""
    match = _HUNK_HEADER_RE.search(hunk_text)
    if match is None:
        return None
    old_begin, old_len, new_begin, new_len = (int(g) for g in match.groups())
    return HunkRange(
        old=LineRange(start=old_begin, end=old_begin + old_len - 1),
        new=LineRange(start=new_begin, end=new_begin + new_len - 1),
    )


def render_hunk(hunk_text: str) -> tuple[str, str] | None:
    """Render a hunk into ``(old_text, new_text)`` blocks.

    Added lines are always numbered. Context lines are numbered unless they
    sit in the first or last three body lines of a hunk that has additions;
    a removal-only hunk numbers every context line.
    """
    hunk_range = patch_start_end_line(hunk_text)
    if hunk_range is None:
        return None

    lines = hunk_text.split("\n")[1:]  # drop the @@ header
    if lines and lines[-1] == "":
        lines.pop()

    removal_only = not any(line.startswith("+") for line in lines)
    old_lines: list[str] = []
    new_lines: list[str] = []
    new_line = hunk_range.new.start

    for position, line in enumerate(lines, 1):
        if line.startswith("-"):
            old_lines.append(line[1:])
        elif line.startswith("+"):
            new_lines.append(f"{new_line}: {line[1:]}")
            new_line += 1
        else:
            old_lines.append(line)
            if removal_only or _SKIP_START < position <= len(lines) - _SKIP_END:
                new_lines.append(f"{new_line}: {line}")
            else:
                new_lines.append(line)
            new_line += 1

    return "\n".join(old_lines), "\n".join(new_lines)


def parse_file_patches(patch: str | None) -> list[Hunk]:
    """Decompose one file's patch into rendered hunks, skipping malformed ones."""
    hunks: list[Hunk] = []
    for hunk_text in split_patch(patch):
        hunk_range = patch_start_end_line(hunk_text)
        rendered = render_hunk(hunk_text)
        if hunk_range is None or rendered is None:
            logger.debug("Skipping hunk with unparseable header: %r", hunk_text[:80])
            continue
        old_text, new_text = rendered
        hunks.append(
            Hunk(
                old_start=hunk_range.old.start,
                old_end=hunk_range.old.end,
                new_start=hunk_range.new.start,
                new_end=hunk_range.new.end,
                old_text=old_text,
                new_text=new_text,
            )
        )
    return hunks
