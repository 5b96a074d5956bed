"""Tests for GitHub pull request helper functions."""

from unittest.mock import MagicMock

from hunkwise_core.gh.pull_request import get_comment_chains_within_range, state_key, to_review_comment


def _comment(id, path, line, body, login="alice", in_reply_to_id=None, original_line=None):
    c = MagicMock()
    c.id = id
    c.path = path
    c.line = line
    c.original_line = original_line
    c.body = body
    c.user.login = login
    c.in_reply_to_id = in_reply_to_id
    return c


class TestStateKey:
    def test_format(self):
        assert state_key("owner/repo", 42) == "owner/repo#42"


class TestCommentChains:
    def test_thread_with_replies_in_order(self):
        comments = [
            _comment(1, "a.py", 10, "Why this?"),
            _comment(2, "a.py", 10, "Because.", login="bob", in_reply_to_id=1),
        ]
        assert get_comment_chains_within_range(comments, "a.py", 5, 15) == "alice: Why this?\nbob: Because."

    def test_out_of_range_and_other_files_ignored(self):
        comments = [
            _comment(1, "a.py", 50, "far"),
            _comment(2, "b.py", 10, "other file"),
        ]
        assert get_comment_chains_within_range(comments, "a.py", 5, 15) == ""

    def test_multiple_threads_separated(self):
        comments = [_comment(1, "a.py", 6, "one"), _comment(2, "a.py", 7, "two")]
        assert get_comment_chains_within_range(comments, "a.py", 5, 15) == "alice: one\n---\nalice: two"

    def test_outdated_comment_uses_original_line(self):
        comments = [_comment(1, "a.py", None, "outdated", original_line=8)]
        assert get_comment_chains_within_range(comments, "a.py", 5, 15) == "alice: outdated"


class TestToReviewComment:
    def test_single_line(self):
        payload = to_review_comment({"path": "a.py", "start_line": 4, "end_line": 4, "body": "x"})
        assert payload == {"path": "a.py", "body": "x", "line": 4, "side": "RIGHT"}

    def test_range(self):
        payload = to_review_comment({"path": "a.py", "start_line": 4, "end_line": 9, "body": "x"})
        assert payload["line"] == 9
        assert payload["start_line"] == 4
        assert payload["start_side"] == "RIGHT"
