"""Tests for the core review pipeline: run_review end to end against mocks."""

import types
from unittest.mock import MagicMock

import pytest
from github import GithubException

from hunkwise_core.retry import RetryExhaustedError
from hunkwise_core.reviewer import run_review
from hunkwise_core.state import (
    create_review_state,
    deserialize_state,
    serialize_state,
    update_file_status,
    update_phase,
)
from hunkwise_core.tokens import TokenLimits

SHA = "a" * 40
KEY = "owner/repo#1"
PATCH = "@@ -1,2 +1,3 @@\n line1\n+new line\n line2\n"


@pytest.fixture(autouse=True)
def _char_counter(mocker):
    mocker.patch("hunkwise_core.reviewer.count_tokens", side_effect=lambda text, model=None: len(text or ""))


class MemoryStore:
    def __init__(self, blobs=None):
        self.blobs = dict(blobs or {})
        self.saves = 0

    def load(self, key):
        return self.blobs.get(key)

    def save(self, key, blob):
        self.saves += 1
        self.blobs[key] = blob

    def delete(self, key):
        self.blobs.pop(key, None)


class FakeProvider:
    """Replies per file: ``replies`` maps a filename to a string or an exception."""

    model = "gpt-4o"
    token_limits = TokenLimits(max_tokens=128000, response_tokens=16384)

    def __init__(self, default, replies=None):
        self.default = default
        self.replies = replies or {}
        self.prompts = []

    def chat(self, message, options=None):
        self.prompts.append(message)
        reply = self.default
        for filename, value in self.replies.items():
            if f"`{filename}`" in message:
                reply = value
        if isinstance(reply, Exception):
            raise reply
        return reply


def make_file(filename, status="modified", patch=PATCH):
    return types.SimpleNamespace(filename=filename, status=status, patch=patch)


def make_repo(files, draft=False):
    pr = MagicMock()
    pr.draft = draft
    pr.head.sha = SHA
    pr.title = "Fix bug"
    pr.body = "Fixes the bug."
    pr.get_files.return_value = files
    pr.get_review_comments.return_value = []
    repo = MagicMock()
    repo.get_pull.return_value = pr
    repo.get_contents.return_value.decoded_content = b"line1\nnew line\nline2\n"
    return repo, pr


def _config(**overrides):
    config = {
        "github_token": "tok",
        "model": "anthropic",
        "anthropic_api_key": "key",
        "openai_api_key": None,
        "guidelines": None,
        "exclude": [],
        "review_draft_prs": False,
        "review_simple_changes": False,
        "review_comment_lgtm": False,
        "max_files": 0,
        "max_chars_per_file": 20000,
        "llm_concurrency": 2,
        "github_concurrency": 2,
        "batch_limit": 60,
        "resume": True,
    }
    config.update(overrides)
    return config


def _run(repo, store=None, light=None, heavy=None, **kwargs):
    light = light or FakeProvider("Changes things.\n[TRIAGE]: NEEDS_REVIEW")
    heavy = heavy or FakeProvider("2-2:\nRename this.")
    summary = run_review(
        repo="owner/repo",
        pr_number=1,
        config=kwargs.pop("config", _config()),
        store=store,
        auto_confirm=True,
        repo_obj=repo,
        reviewer=heavy,
        light_reviewer=light,
        **kwargs,
    )
    return summary, light, heavy


def _inline_reviews(pr):
    return [c for c in pr.create_review.call_args_list if c.kwargs.get("comments")]


# ---------------------------------------------------------------------------
# Early exits
# ---------------------------------------------------------------------------


class TestRunReviewEarlyExit:
    def test_pr_not_found_raises_value_error(self):
        repo = MagicMock()
        repo.get_pull.side_effect = GithubException(404, {"message": "Not Found"}, None)
        with pytest.raises(ValueError, match="not found"):
            _run(repo)

    def test_draft_pr_skipped(self):
        repo, pr = make_repo([make_file("a.py")], draft=True)
        summary, light, _ = _run(repo)
        assert summary is None
        assert light.prompts == []
        pr.create_review.assert_not_called()

    def test_no_reviewable_files(self):
        repo, pr = make_repo([make_file("logo.png")])
        summary, _, _ = _run(repo)
        assert summary is None

    def test_user_declines(self, mocker):
        repo, pr = make_repo([make_file("a.py")])
        mocker.patch("builtins.input", return_value="n")
        summary = run_review(
            "owner/repo", 1, _config(), repo_obj=repo, reviewer=FakeProvider(""), light_reviewer=FakeProvider("")
        )
        assert summary is None
        pr.create_review.assert_not_called()


# ---------------------------------------------------------------------------
# Full runs
# ---------------------------------------------------------------------------


class TestRunReviewFull:
    def test_reviews_every_file_and_posts(self):
        repo, pr = make_repo([make_file("a.py"), make_file("b.py")])
        store = MemoryStore()
        summary, light, heavy = _run(repo, store=store)

        assert sorted(summary.reviewed_files) == ["a.py", "b.py"]
        assert summary.total_comments == 2
        assert len(light.prompts) == 2
        assert len(heavy.prompts) == 2
        # The summarize output feeds the review prompt.
        assert all("Changes things." in p for p in heavy.prompts)

        inline = _inline_reviews(pr)
        assert len(inline) == 2
        assert inline[0].kwargs["comments"][0]["line"] == 2
        assert inline[0].kwargs["event"] == "COMMENT"
        final = pr.create_review.call_args_list[-1]
        assert "Review summary" in final.kwargs["body"]

        state = deserialize_state(store.blobs[KEY])
        assert state.phase == "reviewing"
        assert state.completed_files == 2
        assert [f.status for f in state.files] == ["reviewed", "reviewed"]
        assert "Progress: 2/2 files (100%)" in summary.progress

    def test_excluded_files_reported_but_not_tracked(self):
        repo, _ = make_repo([make_file("a.py"), make_file("yarn.lock")])
        store = MemoryStore()
        summary, _, _ = _run(repo, store=store)
        assert "yarn.lock (excluded)" in summary.skipped_files
        assert deserialize_state(store.blobs[KEY]).filenames == ["a.py"]

    def test_trivial_file_skipped_before_review(self):
        light = FakeProvider("Real change.\n[TRIAGE]: NEEDS_REVIEW", {"b.py": "Typo.\n[TRIAGE]: APPROVED"})
        repo, _ = make_repo([make_file("a.py"), make_file("b.py")])
        summary, _, heavy = _run(repo, light=light)
        assert summary.reviewed_files == ["a.py"]
        assert "b.py (trivial changes)" in summary.skipped_files
        assert len(heavy.prompts) == 1

    def test_lgtm_not_posted(self):
        repo, pr = make_repo([make_file("a.py")])
        summary, _, _ = _run(repo, heavy=FakeProvider("2-2:\nLGTM!"))
        assert summary.total_comments == 0
        assert summary.lgtm_count == 1
        assert _inline_reviews(pr) == []
        assert summary.reviewed_files == ["a.py"]

    def test_failed_file_does_not_stop_others(self):
        heavy = FakeProvider("2-2:\nRename this.", {"b.py": RetryExhaustedError("rate limit", "rate_limit", 5)})
        repo, _ = make_repo([make_file("a.py"), make_file("b.py")])
        store = MemoryStore()
        summary, _, _ = _run(repo, store=store, heavy=heavy)

        assert summary.reviewed_files == ["a.py"]
        assert summary.failed_files == ["b.py (rate limit)"]
        state = deserialize_state(store.blobs[KEY])
        assert state.last_error.type == "rate_limit"
        assert state.get_file("b.py").status == "failed"

    def test_post_failure_marks_file_failed(self):
        repo, pr = make_repo([make_file("a.py")])

        def create_review(**kwargs):
            if kwargs.get("comments"):
                raise GithubException(422, {"message": "Unprocessable"}, None)

        pr.create_review.side_effect = create_review
        store = MemoryStore()
        summary, _, _ = _run(repo, store=store)
        assert summary.reviewed_files == []
        assert len(summary.failed_files) == 1
        assert deserialize_state(store.blobs[KEY]).get_file("a.py").status == "failed"

    def test_transport_error_while_posting_fails_only_that_file(self):
        repo, pr = make_repo([make_file("a.py"), make_file("b.py")])

        def create_review(**kwargs):
            comments = kwargs.get("comments") or []
            if any(c["path"] == "b.py" for c in comments):
                raise ConnectionResetError("Connection reset by peer")

        pr.create_review.side_effect = create_review
        store = MemoryStore()
        summary, _, _ = _run(repo, store=store)

        assert summary.reviewed_files == ["a.py"]
        assert summary.failed_files == ["b.py (Connection reset by peer)"]
        state = deserialize_state(store.blobs[KEY])
        assert state.get_file("b.py").status == "failed"
        assert state.last_error.type == "network"
        # The summary review is still posted.
        assert "Review summary" in pr.create_review.call_args_list[-1].kwargs["body"]

    def test_content_fetch_error_does_not_stop_review(self):
        repo, _ = make_repo([make_file("a.py"), make_file("b.py")])
        repo.get_contents.side_effect = ConnectionResetError("Connection reset by peer")
        summary, light, _ = _run(repo)

        assert sorted(summary.reviewed_files) == ["a.py", "b.py"]
        assert all("Full file content" not in p for p in light.prompts)

    def test_comments_posted_in_batches(self):
        heavy = FakeProvider("1-1:\nA\n---\n2-2:\nB\n---\n3-3:\nC")
        repo, pr = make_repo([make_file("a.py")])
        _run(repo, heavy=heavy, config=_config(batch_limit=2))
        assert [len(c.kwargs["comments"]) for c in _inline_reviews(pr)] == [2, 1]

    def test_max_files_limits_reviewed_files(self):
        repo, _ = make_repo([make_file("a.py"), make_file("b.py")])
        summary, light, _ = _run(repo, config=_config(max_files=1))
        assert summary.reviewed_files == ["a.py"]
        assert "b.py (max files exceeded)" in summary.skipped_files
        assert len(light.prompts) == 1

    def test_file_without_parseable_hunks_skipped(self):
        repo, _ = make_repo([make_file("a.py"), make_file("b.py", patch="Binary files differ")])
        summary, _, _ = _run(repo)
        assert "b.py (no parseable hunks)" in summary.skipped_files

    def test_shadow_posts_and_saves_nothing(self):
        repo, pr = make_repo([make_file("a.py")])
        store = MemoryStore()
        summary, _, _ = _run(repo, store=store, shadow=True)
        assert summary.total_comments == 1
        pr.create_review.assert_not_called()
        assert store.saves == 0


# ---------------------------------------------------------------------------
# Resume
# ---------------------------------------------------------------------------


def _interrupted_state():
    state = create_review_state(SHA, ["a.py", "b.py", "c.py"])
    state = update_file_status(state, "a.py", "reviewed")
    state = update_file_status(state, "b.py", "summarized")
    state = update_file_status(state, "c.py", "skipped", skip_reason="trivial changes")
    return update_phase(state, "reviewing")


class TestRunReviewResume:
    def _files(self):
        return [make_file("a.py"), make_file("b.py"), make_file("c.py")]

    def test_resumes_only_remaining_file(self):
        repo, pr = make_repo(self._files())
        store = MemoryStore({KEY: serialize_state(_interrupted_state())})
        summary, light, heavy = _run(repo, store=store)

        assert summary.resumed is True
        assert light.prompts == []
        assert len(heavy.prompts) == 1
        assert "`b.py`" in heavy.prompts[0]
        assert sorted(summary.reviewed_files) == ["a.py", "b.py"]
        assert deserialize_state(store.blobs[KEY]).completed_files == 3

    def test_completed_review_not_repeated(self):
        state = update_file_status(_interrupted_state(), "b.py", "reviewed")
        repo, pr = make_repo(self._files())
        store = MemoryStore({KEY: serialize_state(state)})
        summary, light, heavy = _run(repo, store=store)
        assert summary is None
        assert heavy.prompts == []
        pr.create_review.assert_not_called()

    def test_new_commit_starts_fresh(self):
        state = _interrupted_state()
        repo, pr = make_repo(self._files())
        pr.head.sha = "b" * 40
        store = MemoryStore({KEY: serialize_state(state)})
        summary, light, heavy = _run(repo, store=store)
        assert summary.resumed is False
        assert len(light.prompts) == 3

    def test_force_full_ignores_stored_state(self):
        repo, _ = make_repo(self._files())
        store = MemoryStore({KEY: serialize_state(_interrupted_state())})
        summary, light, heavy = _run(repo, store=store, force_full=True)
        assert summary.resumed is False
        assert len(light.prompts) == 3
        assert len(heavy.prompts) == 3

    def test_resume_disabled_in_config(self):
        repo, _ = make_repo(self._files())
        store = MemoryStore({KEY: serialize_state(_interrupted_state())})
        summary, light, _ = _run(repo, store=store, config=_config(resume=False))
        assert summary.resumed is False
        assert len(light.prompts) == 3

    def test_corrupt_state_starts_fresh(self):
        repo, _ = make_repo(self._files())
        store = MemoryStore({KEY: "{not json"})
        summary, light, _ = _run(repo, store=store)
        assert summary.resumed is False
        assert len(light.prompts) == 3
