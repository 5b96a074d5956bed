from __future__ import annotations

import logging

from github import Github

logger = logging.getLogger(__name__)


def get_repo(repo_name: str, token: str):
    return Github(token).get_repo(repo_name)


def get_pull(repo, pr_number: int):
    return repo.get_pull(pr_number)


def get_pull_requests(repo, state: str = "open"):
    return repo.get_pulls(state=state)


def get_diff(pr):
    return pr.get_files()


def state_key(repo_name: str, pr_number: int) -> str:
    """Key under which a PR's review state is stored."""
    return f"{repo_name}#{pr_number}"


def _comment_line(comment) -> int | None:
    # line is None for comments whose line no longer exists in the current diff
    # (e.g. after a force-push). Fall back to original_line in that case.
    return comment.line if comment.line is not None else getattr(comment, "original_line", None)


def get_comment_chains_within_range(existing_comments, filename: str, start_line: int, end_line: int) -> str:
    """Render existing review threads on ``filename`` anchored within a line range.

    A thread is the top-level comment plus its replies, in posting order, one
    ``"<login>: <body>"`` entry per comment. Threads are separated by ``---``.
    """
    threads: dict[int, list] = {}
    anchors: dict[int, int | None] = {}
    for c in existing_comments:
        if c.path != filename:
            continue
        root = getattr(c, "in_reply_to_id", None) or c.id
        threads.setdefault(root, []).append(c)
        if root == c.id:
            anchors[root] = _comment_line(c)

    chains = []
    for root, comments in threads.items():
        line = anchors.get(root)
        if line is None or not start_line <= line <= end_line:
            continue
        entries = [f"{c.user.login}: {c.body}" for c in comments]
        chains.append("\n".join(entries))
    return "\n---\n".join(chains)


def to_review_comment(comment: dict) -> dict:
    """Convert an internal comment dict into GitHub's review comment payload.

    Single-line comments use ``line`` only; ranges add ``start_line``. Both
    sit on the new (RIGHT) side of the diff.
    """
    payload = {"path": comment["path"], "body": comment["body"], "line": comment["end_line"], "side": "RIGHT"}
    if comment["start_line"] < comment["end_line"]:
        payload["start_line"] = comment["start_line"]
        payload["start_side"] = "RIGHT"
    return payload
