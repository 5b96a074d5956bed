"""Core PR review orchestration.

A run goes through two phases, each resumable:

  summarizing — one light-model call per file; the summary feeds the review
                prompt and its triage tag can skip trivial files.
  reviewing   — hunks are packed into one heavy-model request per file, the
                response is parsed into line-range comments, and the comments
                are posted before the file is marked reviewed.

LLM and GitHub calls run on two separate bounded thread pools. Only the
driver thread touches the ReviewState: workers return outcomes, and the
driver applies each transition and persists the result before looking at
the next completed future.
"""

from __future__ import annotations

import fnmatch
import logging
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Optional

from github import GithubException
from rich.console import Console

from hunkwise_core.config import load_guidelines
from hunkwise_core.diff.patch import Hunk, parse_file_patches
from hunkwise_core.gh.pull_request import (
    get_comment_chains_within_range,
    get_diff,
    get_pull,
    get_repo,
    state_key,
    to_review_comment,
)
from hunkwise_core.packer import calculate_patches_to_pack, pack_patches_into_inputs
from hunkwise_core.parser import is_lgtm, parse_review, parse_triage
from hunkwise_core.prompts import build_review_prompt, build_summarize_prompt, build_system_prompt
from hunkwise_core.providers.anthropic import AnthropicProvider
from hunkwise_core.providers.base import BaseProvider, ChatOptions
from hunkwise_core.providers.openai import OpenAIProvider
from hunkwise_core.resume import filter_files_for_resume, load_resumable_state, should_resume_review
from hunkwise_core.retry import RetryExhaustedError, build_retry_config
from hunkwise_core.state import (
    ErrorType,
    FileStatus,
    Phase,
    ReviewState,
    TokenLimitError,
    classify_exception,
    create_review_state,
    get_progress_summary,
    record_error,
    serialize_state,
    update_file_status,
    update_phase,
)
from hunkwise_core.tokens import count_tokens
from hunkwise_core.utils.code import is_reviewable

console = Console()
logger = logging.getLogger(__name__)

SKIP_DIFF_TOO_LARGE = "diff too large"
SKIP_TRIVIAL = "trivial changes"
SKIP_NO_HUNKS = "no parseable hunks"
SKIP_MAX_FILES = "max files exceeded"


@dataclass
class ReviewSummary:
    """Result returned by run_review.

    Decoupled from hunkwise_store so hunkwise_core has no dependency on the
    store layer.
    """

    repo: str
    pr_number: int
    head_sha: str
    reviewed_files: list[str] = field(default_factory=list)
    skipped_files: list[str] = field(default_factory=list)  # "<filename> (<reason>)"
    failed_files: list[str] = field(default_factory=list)  # "<filename> (<error>)"
    total_comments: int = 0
    comments: list[dict] = field(default_factory=list)
    lgtm_count: int = 0
    resumed: bool = False
    progress: str = ""
    reviewed_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


@dataclass
class FileChange:
    filename: str
    patch: str
    hunks: list[Hunk]
    content: str = ""


@dataclass
class FileOutcome:
    """What a worker reports back about one file; the driver turns it into a transition."""

    status: FileStatus
    summary: str = ""
    comments: list[dict] = field(default_factory=list)
    lgtm_count: int = 0
    error: Optional[str] = None
    error_type: Optional[ErrorType] = None
    skip_reason: Optional[str] = None


@dataclass
class ReviewContext:
    """Per-run inputs shared by every file worker (read-only once the pools start)."""

    title: str
    description: str
    system_prompt: str
    review_simple_changes: bool = False
    review_comment_lgtm: bool = False
    summaries: dict[str, str] = field(default_factory=dict)
    existing_comments: list = field(default_factory=list)


class StateTracker:
    """Single owner of the run's ReviewState.

    Only the driver thread calls these methods. Each one applies one pure
    transition and persists the new state; persistence failures are logged
    and never abort the review.
    """

    def __init__(self, state: ReviewState, store=None, key: str = ""):
        self.state = state
        self._store = store
        self._key = key

    def set_status(self, filename: str, status: FileStatus, **meta) -> None:
        self.state = update_file_status(self.state, filename, status, **meta)
        self._persist()

    def set_phase(self, phase: Phase) -> None:
        self.state = update_phase(self.state, phase)
        self._persist()

    def record_error(self, message: str, error_type: ErrorType) -> None:
        self.state = record_error(self.state, message, error_type)
        self._persist()

    def apply(self, filename: str, outcome: FileOutcome) -> None:
        if outcome.status == "failed":
            self.record_error(f"{filename}: {outcome.error}", outcome.error_type or "unknown")
        self.set_status(filename, outcome.status, error=outcome.error, skip_reason=outcome.skip_reason)

    def _persist(self) -> None:
        if self._store is None:
            return
        try:
            self._store.save(self._key, serialize_state(self.state))
        except Exception as e:
            logger.warning("Could not persist review state (%s): %s", type(e).__name__, e)


def _get_provider(config: dict, model_name: str | None = None) -> BaseProvider:
    provider = config["model"]
    kwargs = {
        "model": model_name,
        "retry_config": build_retry_config(config.get("retry_max_attempts", 3), config.get("retry_per_error_type")),
        "timeout_seconds": config.get("timeout_seconds", 120),
    }
    if provider == "anthropic":
        return AnthropicProvider(api_key=config["anthropic_api_key"], **kwargs)
    if provider == "openai":
        return OpenAIProvider(api_key=config["openai_api_key"], **kwargs)
    raise ValueError(f"Unknown model provider: {provider!r}. Choose 'anthropic' or 'openai'.")


def _is_excluded(filename: str, patterns: list[str]) -> bool:
    """Return True if filename matches any exclude pattern.

    Supports:
    - fnmatch globs on the full path: "src/generated/*.py"
    - fnmatch globs on the basename: "*.lock", "*.min.js"
    - Directory names/prefixes: "migrations/", "tests" (matches any file within that tree)
    """
    for pattern in patterns:
        if fnmatch.fnmatch(filename, pattern):
            return True
        # Basename match: "*.lock" matches "path/to/yarn.lock"
        if fnmatch.fnmatch(filename.rsplit("/", 1)[-1], pattern):
            return True
        # Directory prefix: "migrations" or "migrations/" matches "app/migrations/0001.py"
        prefix = pattern.rstrip("/") + "/"
        if filename.startswith(prefix) or ("/" + prefix) in filename:
            return True
    return False


def collect_changes(diff_files, exclude_patterns: list[str]) -> tuple[list[FileChange], list[str]]:
    """Decompose reviewable files into hunks; return ``(changes, ignored_filenames)``."""
    changes: list[FileChange] = []
    ignored: list[str] = []
    for f in diff_files:
        if _is_excluded(f.filename, exclude_patterns) or not is_reviewable(f):
            logger.info("skip for excluded path: %s", f.filename)
            ignored.append(f.filename)
            continue
        changes.append(FileChange(filename=f.filename, patch=f.patch, hunks=parse_file_patches(f.patch)))
    return changes, ignored


def already_commented(existing_comments, file_path: str, file_line: int, comment_text: str) -> bool:
    """Check whether an identical comment already exists on the PR for this file+line."""
    text = comment_text.strip()
    for c in existing_comments:
        comment_line = c.line if c.line is not None else getattr(c, "original_line", None)
        if c.path == file_path and comment_line == file_line and text in c.body.strip():
            return True
    return False


def _failed(e: Exception) -> FileOutcome:
    error_type = e.error_type if isinstance(e, RetryExhaustedError) else classify_exception(e)
    return FileOutcome(status="failed", error=str(e), error_type=error_type)


def _outcome_of(future: Future, filename: str) -> FileOutcome:
    """Unwrap a worker future; anything the worker let escape fails only that file."""
    try:
        return future.result()
    except Exception as e:
        logger.warning("%s failed unexpectedly: %s", filename, e)
        return _failed(e)


# --------------------------------------------------------------------------- #
# Workers: run on the pools, never touch the ReviewState                      #
# --------------------------------------------------------------------------- #


def fetch_file_content(repo, filename: str, ref: str, max_chars: int) -> str:
    try:
        content = repo.get_contents(filename, ref=ref).decoded_content.decode("utf-8", errors="replace")
    except Exception as e:
        # The summary is still useful from the patch alone.
        logger.warning("Could not fetch %s at %s: %s", filename, ref[:7], e)
        return ""
    if len(content) > max_chars:
        content = content[:max_chars] + "\n... [file truncated]"
    return content


def summarize_file(provider: BaseProvider, change: FileChange, ctx: ReviewContext) -> FileOutcome:
    prompt = build_summarize_prompt(
        ctx.title, ctx.description, change.filename, change.patch, ctx.review_simple_changes
    )
    if change.content:
        prompt += f"\n\n## Full file content\n```\n{change.content}\n```"
    try:
        response = provider.chat(prompt)
    except TokenLimitError as e:
        # Too big to summarize is not too big to review hunk by hunk.
        logger.info("summarize: diff tokens exceeds limit for %s (%s)", change.filename, e)
        return FileOutcome(status="summarized")
    except Exception as e:
        logger.warning("summarize: %s failed: %s", change.filename, e)
        return _failed(e)

    if not response.strip():
        logger.info("summarize: nothing obtained for %s", change.filename)
        return FileOutcome(status="summarized")

    summary, needs_review = parse_triage(response)
    if not ctx.review_simple_changes and not needs_review:
        return FileOutcome(status="skipped", summary=summary, skip_reason=SKIP_TRIVIAL)
    return FileOutcome(status="summarized", summary=summary)


def review_file(provider: BaseProvider, change: FileChange, ctx: ReviewContext) -> FileOutcome:
    summary = ctx.summaries.get(change.filename, "")
    base_prompt = build_review_prompt(ctx.title, ctx.description, change.filename, summary, "")
    limit = provider.token_limits.request_tokens
    base_tokens = count_tokens(ctx.system_prompt, provider.model) + count_tokens(base_prompt, provider.model)

    def counter(text: str) -> int:
        return count_tokens(text, provider.model)

    to_pack = calculate_patches_to_pack(change.hunks, base_tokens, limit, counter)
    if to_pack == 0:
        return FileOutcome(status="skipped", skip_reason=SKIP_DIFF_TOO_LARGE)

    packed = pack_patches_into_inputs(
        change.hunks,
        to_pack,
        limit,
        base_tokens,
        comment_chain_for=lambda start, end: get_comment_chains_within_range(
            ctx.existing_comments, change.filename, start, end
        ),
        counter=counter,
    )
    prompt = build_review_prompt(ctx.title, ctx.description, change.filename, summary, packed.text)

    try:
        response = provider.chat(prompt, ChatOptions(system_message=ctx.system_prompt))
    except Exception as e:
        logger.warning("review: %s failed: %s", change.filename, e)
        return _failed(e)
    if not response.strip():
        return FileOutcome(status="failed", error="no response", error_type="api_error")

    comments: list[dict] = []
    lgtm_count = 0
    for review in parse_review(response, change.hunks):
        if not ctx.review_comment_lgtm and is_lgtm(review.comment):
            lgtm_count += 1
            continue
        if already_commented(ctx.existing_comments, change.filename, review.end_line, review.comment):
            logger.debug("Skipping duplicate comment for %s:%d", change.filename, review.end_line)
            continue
        comments.append(
            {
                "path": change.filename,
                "start_line": review.start_line,
                "end_line": review.end_line,
                "body": review.comment.strip(),
            }
        )
    return FileOutcome(status="reviewed", comments=comments, lgtm_count=lgtm_count)


def post_file_comments(pr, comments: list[dict], batch_limit: int) -> None:
    """Post one file's comments as COMMENT reviews of at most ``batch_limit`` comments."""
    for i in range(0, len(comments), batch_limit):
        batch = comments[i : i + batch_limit]
        pr.create_review(
            body="",
            event="COMMENT",
            comments=[to_review_comment(c) for c in batch],
        )


# --------------------------------------------------------------------------- #
# Reporting                                                                    #
# --------------------------------------------------------------------------- #


def _build_summary(summary: ReviewSummary, elapsed_seconds: float) -> str:
    """Build the top-level review body posted once the run finishes."""
    elapsed_min = elapsed_seconds / 60
    if elapsed_min < 1:
        time_str = f"{int(elapsed_seconds)}s"
    else:
        time_str = f"{elapsed_min:.1f} min"

    lines = ["## Review summary\n"]
    if summary.resumed:
        lines.append("_Resumed from a previous interrupted run._\n")

    lines.append(
        f"**{len(summary.reviewed_files)}** file(s) reviewed"
        + (f", **{len(summary.skipped_files)}** skipped" if summary.skipped_files else "")
        + (f", **{len(summary.failed_files)}** failed" if summary.failed_files else "")
        + f" · **{summary.total_comments}** comment(s)"
        + (f" · {summary.lgtm_count} LGTM" if summary.lgtm_count else "")
        + f" · reviewed in {time_str}\n"
    )
    if summary.progress:
        lines.append(summary.progress.replace("\n", "  \n") + "\n")

    if summary.failed_files:
        lines.append("**Some files could not be reviewed:**")
        lines.extend(f"- `{f}`" for f in summary.failed_files)
        lines.append("")
    if summary.skipped_files:
        lines.append("**Skipped:**")
        lines.extend(f"- `{f}`" for f in summary.skipped_files)

    return "\n".join(lines).rstrip() + "\n"


def print_shadow_comments(comments: list[dict]) -> None:
    """Print review comments to the terminal without posting to GitHub."""
    if not comments:
        console.print("[yellow]Shadow mode: no comments generated.[/yellow]")
        return
    console.print(f"\n[bold]Shadow review — {len(comments)} comment(s) (not posted)[/bold]\n")
    for c in comments:
        lines = f"{c['start_line']}-{c['end_line']}" if c["start_line"] != c["end_line"] else str(c["end_line"])
        console.print(f"[bold cyan]{c['path']}[/bold cyan]  lines [bold]{lines}[/bold]")
        console.print(f"  {c['body']}")
        console.print()


def _summarize_outcomes(state: ReviewState, ignored: list[str]) -> tuple[list[str], list[str], list[str]]:
    reviewed = [f.filename for f in state.files if f.status == "reviewed"]
    skipped = [f"{f.filename} ({f.skip_reason or 'skipped'})" for f in state.files if f.status == "skipped"]
    skipped += [f"{name} (excluded)" for name in ignored]
    failed = [f"{f.filename} ({f.error or 'unknown error'})" for f in state.files if f.status == "failed"]
    return reviewed, skipped, failed


# --------------------------------------------------------------------------- #
# Driver                                                                       #
# --------------------------------------------------------------------------- #


def _drain(pending: dict[Future, tuple], on_done: Callable[[Future, tuple], None]) -> None:
    """Hand completed futures to ``on_done`` one at a time until none are left.

    ``on_done`` may add new futures to ``pending``.
    """
    while pending:
        done, _ = wait(list(pending), return_when=FIRST_COMPLETED)
        for future in done:
            on_done(future, pending.pop(future))


def run_review(
    repo: str,
    pr_number: int,
    config: dict,
    store=None,
    auto_confirm: bool = False,
    shadow: bool = False,
    force_full: bool = False,
    repo_obj=None,
    reviewer: BaseProvider | None = None,
    light_reviewer: BaseProvider | None = None,
) -> ReviewSummary | None:
    """Run the resumable PR review pipeline and return a ReviewSummary.

    Returns None on early exits (draft skip, nothing to review, review already
    complete for this commit, or the user declining to post).
    """
    this_repo = repo_obj if repo_obj is not None else get_repo(repo, token=config["github_token"])

    try:
        this_pr = get_pull(this_repo, pr_number)
    except GithubException:
        raise ValueError(f"PR #{pr_number} not found in {repo}.")

    if this_pr.draft and not config.get("review_draft_prs", False):
        console.print(
            "[yellow]Skipping draft PR. Set review_draft_prs: true in .hunkwise.yml to review drafts.[/yellow]"
        )
        return None

    head_sha = this_pr.head.sha
    changes, ignored = collect_changes(get_diff(this_pr), config.get("exclude", []))
    if not changes:
        console.print("[yellow]No reviewable files in this PR.[/yellow]")
        return None

    # Shadow runs post nothing, so they must not mark files as done either.
    state_store = None if shadow else store
    key = state_key(repo, pr_number)
    filenames = [c.filename for c in changes]
    resume_enabled = bool(config.get("resume", True)) and not force_full

    stored = None
    if state_store is not None and resume_enabled:
        stored = load_resumable_state(state_store.load(key), head_sha, filenames)
    resumed = should_resume_review(resume_enabled, stored)
    if stored is not None and not resumed:
        console.print(f"[yellow]Review of {head_sha[:7]} already completed. Nothing to do.[/yellow]")
        console.print(get_progress_summary(stored))
        return None

    if not shadow and not auto_confirm:
        answer = input(f"Review {len(changes)} file(s) and post comments to PR #{pr_number}? (y/n): ")
        if answer.strip().lower() != "y":
            return None

    tracker = StateTracker(stored if resumed else create_review_state(head_sha, filenames), state_store, key)
    if resumed:
        console.print(f"[cyan]Resuming review of {head_sha[:7]}: {get_progress_summary(tracker.state)}[/cyan]")

    heavy = reviewer or _get_provider(config, config.get("model_name"))
    light = light_reviewer or (
        heavy
        if not config.get("light_model_name")
        else _get_provider(config, config.get("light_model_name"))
    )
    ctx = ReviewContext(
        title=this_pr.title or "",
        description=this_pr.body or "",
        system_prompt=build_system_prompt(load_guidelines(config)),
        review_simple_changes=config.get("review_simple_changes", False),
        review_comment_lgtm=config.get("review_comment_lgtm", False),
    )
    max_files = config.get("max_files", 0)
    batch_limit = config.get("batch_limit", 60)
    all_comments: list[dict] = []
    lgtm_count = 0
    review_start = time.monotonic()

    llm_pool = ThreadPoolExecutor(max_workers=config.get("llm_concurrency", 6), thread_name_prefix="hunkwise-llm")
    gh_pool = ThreadPoolExecutor(max_workers=config.get("github_concurrency", 6), thread_name_prefix="hunkwise-gh")
    try:
        # ---- summarizing ------------------------------------------------- #
        if tracker.state.phase == "summarizing":
            todo = filter_files_for_resume(changes, tracker.state, "summarizing")
            for change in [c for c in todo if not c.hunks]:
                tracker.set_status(change.filename, "skipped", skip_reason=SKIP_NO_HUNKS)
            todo = [c for c in todo if c.hunks]
            if max_files > 0 and len(todo) > max_files:
                for change in todo[max_files:]:
                    tracker.set_status(change.filename, "skipped", skip_reason=SKIP_MAX_FILES)
                todo = todo[:max_files]

            max_chars = config.get("max_chars_per_file", 20000)
            contents = {
                c.filename: gh_pool.submit(fetch_file_content, this_repo, c.filename, head_sha, max_chars)
                for c in todo
            }

            pending: dict[Future, tuple] = {}
            for change in todo:
                change.content = contents[change.filename].result()
                tracker.set_status(change.filename, "summarizing")
                console.print(f"  Summarizing: {change.filename}")
                pending[llm_pool.submit(summarize_file, light, change, ctx)] = (change,)

            def on_summarized(future: Future, item: tuple) -> None:
                (change,) = item
                outcome = _outcome_of(future, change.filename)
                if outcome.summary:
                    ctx.summaries[change.filename] = outcome.summary
                tracker.apply(change.filename, outcome)

            _drain(pending, on_summarized)
            tracker.set_phase("reviewing")

        # ---- reviewing --------------------------------------------------- #
        ctx.existing_comments = list(this_pr.get_review_comments())
        todo = filter_files_for_resume(changes, tracker.state, "reviewing")
        total = len(todo)

        pending = {}
        for i, change in enumerate(todo, 1):
            tracker.set_status(change.filename, "reviewing")
            console.print(f"\n[{i}/{total}] Reviewing: {change.filename}")
            pending[llm_pool.submit(review_file, heavy, change, ctx)] = ("review", change)

        def on_done(future: Future, item: tuple) -> None:
            nonlocal lgtm_count
            stage, change = item[0], item[1]
            if stage == "review":
                outcome = _outcome_of(future, change.filename)
                if outcome.status != "reviewed" or not outcome.comments or shadow:
                    all_comments.extend(outcome.comments)
                    lgtm_count += outcome.lgtm_count
                    tracker.apply(change.filename, outcome)
                    console.print(f"  {change.filename}: {outcome.status}, {len(outcome.comments)} comment(s).")
                    return
                post = gh_pool.submit(post_file_comments, this_pr, outcome.comments, batch_limit)
                pending[post] = ("post", change, outcome)
                return

            outcome = item[2]
            try:
                future.result()
            except Exception as e:
                # PyGithub lets transport errors from requests through unwrapped.
                logger.warning("Could not post comments for %s: %s", change.filename, e)
                tracker.apply(change.filename, _failed(e))
                return
            all_comments.extend(outcome.comments)
            lgtm_count += outcome.lgtm_count
            tracker.apply(change.filename, outcome)
            console.print(f"  {change.filename}: {len(outcome.comments)} comment(s) posted.")

        _drain(pending, on_done)
    finally:
        llm_pool.shutdown(wait=True)
        gh_pool.shutdown(wait=True)

    reviewed, skipped, failed = _summarize_outcomes(tracker.state, ignored)
    summary = ReviewSummary(
        repo=repo,
        pr_number=pr_number,
        head_sha=head_sha,
        reviewed_files=reviewed,
        skipped_files=skipped,
        failed_files=failed,
        total_comments=len(all_comments),
        comments=all_comments,
        lgtm_count=lgtm_count,
        resumed=resumed,
        progress=get_progress_summary(tracker.state),
    )

    if shadow:
        print_shadow_comments(all_comments)
        console.print(f"[bold]Shadow review complete. {len(all_comments)} comment(s) would be posted.[/bold]")
        return summary

    body = _build_summary(summary, time.monotonic() - review_start)
    this_pr.create_review(body=body, event="COMMENT")
    console.print(
        f"\n[green]Review posted: {summary.total_comments} comment(s) across "
        f"{len(summary.reviewed_files)} file(s).[/green] {summary.progress}"
    )
    return summary
