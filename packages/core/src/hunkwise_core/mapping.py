from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Sequence

from hunkwise_core.diff.patch import Hunk


@dataclass(frozen=True)
class Review:
    start_line: int
    end_line: int
    comment: str


@dataclass(frozen=True)
class PatchMatch:
    within_patch: bool
    start_line: int
    end_line: int
    overlap: int


def find_best_patch(start_line: int, end_line: int, hunks: Sequence[Hunk]) -> PatchMatch:
    """Find the hunk whose new-side range overlaps ``start_line..end_line`` the most.

    Ties keep the earliest hunk. ``start_line``/``end_line`` of the result are
    -1 when nothing overlaps.
    """
    best_start, best_end, max_overlap = -1, -1, 0
    for hunk in hunks:
        overlap = max(0, min(end_line, hunk.new_end) - max(start_line, hunk.new_start) + 1)
        if overlap > max_overlap:
            max_overlap = overlap
            best_start, best_end = hunk.new_start, hunk.new_end
    within = max_overlap > 0 and max_overlap == end_line - start_line + 1
    return PatchMatch(within_patch=within, start_line=best_start, end_line=best_end, overlap=max_overlap)


def map_review_to_patch(review: Review, hunks: Sequence[Hunk]) -> Review:
    """Pin a review onto a real hunk, disclosing any remapping in the comment."""
    if not hunks:
        raise ValueError("cannot map a review onto a file with no hunks")

    match = find_best_patch(review.start_line, review.end_line, hunks)
    if match.within_patch:
        return review

    original = f"Original lines [{review.start_line}-{review.end_line}]"
    if match.overlap > 0:
        note = (
            "> Note: This review was outside of the patch, so it was mapped to the patch "
            f"with the greatest overlap. {original}"
        )
        start, end = match.start_line, match.end_line
    else:
        note = (
            "> Note: This review was outside of the patch, but no overlapping patch was found. "
            f"{original}"
        )
        start, end = hunks[0].new_start, hunks[0].new_end
    return replace(review, start_line=start, end_line=end, comment=f"{note}\n\n{review.comment}")
