"""PRCommentStateStore: keep review state on the pull request itself.

The default store. The state lives in a dedicated issue comment on the PR,
between HTML comment markers, so it travels with the PR, needs no extra
infrastructure and is readable by any later CI run that can see the PR.
The markers render invisibly on GitHub; the visible part of the comment
only says what the comment is for.

Keys have the form ``owner/repo#123``.
"""

from __future__ import annotations

import logging
import re

from hunkwise_store.base import BaseStateStore

logger = logging.getLogger(__name__)

STATE_TAG = "<!-- hunkwise-state -->"
STATE_START_TAG = "<!-- hunkwise-review-state-start -->"
STATE_END_TAG = "<!-- hunkwise-review-state-end -->"

_STATE_BLOCK_RE = re.compile(
    re.escape(STATE_START_TAG) + r"\s*<!--\n(.*?)\n-->\s*" + re.escape(STATE_END_TAG),
    re.DOTALL,
)


def parse_key(key: str) -> tuple[str, int]:
    """Split ``owner/repo#123`` into ``("owner/repo", 123)``."""
    repo_name, _, number = key.rpartition("#")
    if not repo_name or not number.isdigit():
        raise ValueError(f"Invalid state key: {key!r} (expected 'owner/repo#<pr>')")
    return repo_name, int(number)


def extract_state_block(body: str) -> str | None:
    """Return the text between the state markers in a comment body, or None."""
    match = _STATE_BLOCK_RE.search(body or "")
    return match.group(1) if match else None


def render_state_comment(blob: str) -> str:
    # "-->" can only occur inside a JSON string, where ">" decodes to the same text.
    escaped = blob.replace("-->", "--\\u003e")
    return (
        f"{STATE_TAG}\n"
        "_hunkwise review progress. This comment records per-file progress so an "
        "interrupted review can resume; it is updated automatically._\n\n"
        f"{STATE_START_TAG}\n<!--\n{escaped}\n-->\n{STATE_END_TAG}"
    )


class PRCommentStateStore(BaseStateStore):
    """Stores each PR's review state in a tagged issue comment on that PR."""

    def __init__(self, token: str):
        try:
            from github import Github
        except ImportError:
            raise ImportError("PyGithub is required for PRCommentStateStore.")
        self._gh = Github(token)

    def _get_issue(self, key: str):
        repo_name, pr_number = parse_key(key)
        return self._gh.get_repo(repo_name).get_issue(pr_number)

    @staticmethod
    def _find_state_comment(issue):
        for comment in issue.get_comments():
            if STATE_TAG in (comment.body or ""):
                return comment
        return None

    def load(self, key: str) -> str | None:
        try:
            comment = self._find_state_comment(self._get_issue(key))
        except Exception as e:
            logger.warning("PRCommentStateStore.load() failed (%s): %s", type(e).__name__, e)
            return None
        if comment is None:
            return None
        return extract_state_block(comment.body)

    def save(self, key: str, blob: str) -> None:
        try:
            issue = self._get_issue(key)
            body = render_state_comment(blob)
            comment = self._find_state_comment(issue)
            if comment is None:
                issue.create_comment(body)
            else:
                comment.edit(body)
        except Exception as e:
            # The review itself must not fail because its progress could not be saved.
            logger.warning("PRCommentStateStore.save() failed (%s): %s", type(e).__name__, e)

    def delete(self, key: str) -> None:
        comment = self._find_state_comment(self._get_issue(key))
        if comment is not None:
            comment.delete()
