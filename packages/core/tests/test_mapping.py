"""Tests for pinning model-cited line ranges onto real hunks."""

import pytest

from hunkwise_core.diff.patch import Hunk
from hunkwise_core.mapping import Review, find_best_patch, map_review_to_patch


def _hunk(new_start, new_end):
    return Hunk(
        old_start=new_start,
        old_end=new_end,
        new_start=new_start,
        new_end=new_end,
        old_text="",
        new_text="",
    )


HUNKS = [_hunk(10, 20), _hunk(30, 40)]


class TestFindBestPatch:
    def test_fully_inside(self):
        match = find_best_patch(12, 15, HUNKS)
        assert match.within_patch is True
        assert (match.start_line, match.end_line) == (10, 20)
        assert match.overlap == 4

    def test_partial_overlap_picks_largest(self):
        match = find_best_patch(18, 33, HUNKS)
        # 18-20 overlaps 3 lines of the first hunk, 30-33 overlaps 4 of the second.
        assert match.within_patch is False
        assert (match.start_line, match.end_line) == (30, 40)
        assert match.overlap == 4

    def test_tie_keeps_first_hunk(self):
        match = find_best_patch(19, 31, HUNKS)
        assert (match.start_line, match.end_line) == (10, 20)

    def test_no_overlap(self):
        match = find_best_patch(50, 60, HUNKS)
        assert match.overlap == 0
        assert (match.start_line, match.end_line) == (-1, -1)
        assert match.within_patch is False


class TestMapReviewToPatch:
    def test_within_patch_unchanged(self):
        review = Review(start_line=11, end_line=12, comment="fine")
        assert map_review_to_patch(review, HUNKS) == review

    def test_overlap_remapped_with_note(self):
        review = Review(start_line=18, end_line=25, comment="issue\n")
        mapped = map_review_to_patch(review, HUNKS)
        assert (mapped.start_line, mapped.end_line) == (10, 20)
        assert mapped.comment.startswith("> Note: This review was outside of the patch")
        assert "greatest overlap" in mapped.comment
        assert "Original lines [18-25]" in mapped.comment
        assert mapped.comment.endswith("issue\n")

    def test_no_overlap_falls_back_to_first_hunk(self):
        mapped = map_review_to_patch(Review(start_line=90, end_line=95, comment="far away"), HUNKS)
        assert (mapped.start_line, mapped.end_line) == (10, 20)
        assert "no overlapping patch was found" in mapped.comment
        assert "Original lines [90-95]" in mapped.comment

    def test_no_hunks_raises(self):
        with pytest.raises(ValueError):
            map_review_to_patch(Review(start_line=1, end_line=2, comment="x"), [])
