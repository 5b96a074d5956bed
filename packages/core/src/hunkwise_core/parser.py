"""Parse the model's line-range review format into mapped Reviews.

Expected response shape::

    12-15:
    Comment body, any markdown.
    ---
    20-20:
    Another comment.

Anything before the first range marker is ignored.
"""

from __future__ import annotations

import logging
import re
from typing import Sequence

from hunkwise_core.diff.patch import Hunk
from hunkwise_core.mapping import Review, map_review_to_patch

logger = logging.getLogger(__name__)

_RANGE_RE = re.compile(r"(?:^|\s)(\d+)-(\d+):\s*$")
_SEPARATOR = "---"
_ECHOED_LINE_NUMBER_RE = re.compile(r"^ *\d+: ", re.MULTILINE)
_TRIAGE_RE = re.compile(r"\[TRIAGE\]:\s*(NEEDS_REVIEW|APPROVED)")
_SANITIZED_FENCES = ("suggestion", "diff")


def sanitize_code_block(text: str, label: str) -> str:
    """Strip ``"<n>: "`` prefixes the model echoed inside ```<label> fences."""
    fence_start = f"```{label}"
    fence_end = "```"

    start = text.find(fence_start)
    while start != -1:
        body_start = start + len(fence_start)
        end = text.find(fence_end, body_start)
        if end == -1:
            break
        block = _ECHOED_LINE_NUMBER_RE.sub("", text[body_start:end])
        text = text[:body_start] + block + text[end:]
        start = text.find(fence_start, body_start + len(block) + len(fence_end))
    return text


def sanitize_response(text: str) -> str:
    for label in _SANITIZED_FENCES:
        text = sanitize_code_block(text, label)
    return text


def parse_review(response: str, hunks: Sequence[Hunk]) -> list[Review]:
    """Turn a raw review response into Reviews pinned to the file's hunks."""
    reviews: list[Review] = []
    current: tuple[int, int] | None = None
    body: list[str] = []

    def store() -> None:
        if current is None:
            return
        review = Review(start_line=current[0], end_line=current[1], comment="".join(body))
        reviews.append(map_review_to_patch(review, hunks))
        logger.debug("Stored comment for line range %d-%d", current[0], current[1])

    for line in sanitize_response(response.strip()).split("\n"):
        match = _RANGE_RE.search(line)
        if match:
            store()
            current = (int(match.group(1)), int(match.group(2)))
            body = []
            continue
        if line.strip() == _SEPARATOR:
            store()
            current = None
            body = []
            continue
        if current is not None:
            body.append(f"{line}\n")

    store()
    return reviews


def is_lgtm(comment: str) -> bool:
    return "LGTM" in comment or "looks good to me" in comment.lower()


def parse_triage(summary: str) -> tuple[str, bool]:
    """Split a summarize response into ``(summary, needs_review)``.

    A response without a triage tag always needs review.
    """
    match = _TRIAGE_RE.search(summary)
    if match is None:
        return summary, True
    return _TRIAGE_RE.sub("", summary).strip(), match.group(1) == "NEEDS_REVIEW"
