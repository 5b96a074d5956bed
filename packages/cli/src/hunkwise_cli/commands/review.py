"""review command — run a resumable AI review on a pull request."""

from __future__ import annotations

import click
from rich.console import Console

from hunkwise_core.gh.pull_request import get_pull_requests, get_repo
from hunkwise_core.reviewer import run_review

console = Console()


@click.command("review")
@click.option("--repo", required=True, help="GitHub repository in owner/name format.")
@click.option(
    "--pr",
    "pr_number",
    type=int,
    default=None,
    help="Pull request number. Omit to list open PRs interactively.",
)
@click.option(
    "--model",
    type=click.Choice(["anthropic", "openai"]),
    default=None,
    help="AI model provider. Overrides config file.",
)
@click.option(
    "--guidelines",
    "guidelines_path",
    default=None,
    help="Path to a Markdown guidelines file. Overrides config file.",
)
@click.option("--max-files", type=int, default=None, help="Review at most this many files (0 = unlimited).")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompts.")
@click.option(
    "--shadow",
    "-s",
    is_flag=True,
    help="Dry-run mode: print review comments without posting to GitHub or saving progress.",
)
@click.option(
    "--full-review",
    "full_review",
    is_flag=True,
    help="Ignore any stored progress and review every file again.",
)
@click.option("--no-resume", is_flag=True, help="Do not resume from stored progress (same as resume: false).")
@click.pass_context
def review_cmd(
    ctx,
    repo: str,
    pr_number: int | None,
    model: str | None,
    guidelines_path: str | None,
    max_files: int | None,
    yes: bool,
    shadow: bool,
    full_review: bool,
    no_resume: bool,
):
    """Review a GitHub pull request hunk by hunk and post inline comments.

    Progress is saved after every file, so a run interrupted by rate limits,
    timeouts or a crash picks up where it stopped when run again on the same
    commit.

    \b
    Required environment variables:
      GITHUB_TOKEN         GitHub personal access token (or use gh CLI)
      ANTHROPIC_API_KEY    Required when using --model anthropic
      OPENAI_API_KEY       Required when using --model openai
    """
    config = dict(ctx.obj["config"])
    overrides = {"model": model, "guidelines": guidelines_path, "max_files": max_files}
    config.update({k: v for k, v in overrides.items() if v is not None})
    if no_resume:
        config["resume"] = False

    token = config.get("github_token")
    if not token:
        raise click.UsageError(
            "No GitHub token found. Set GITHUB_TOKEN or run `gh auth login` first.\n"
            "Create a token at https://github.com/settings/tokens"
        )

    if config["model"] == "anthropic" and not config.get("anthropic_api_key"):
        raise click.UsageError("ANTHROPIC_API_KEY environment variable is not set.")
    if config["model"] == "openai" and not config.get("openai_api_key"):
        raise click.UsageError("OPENAI_API_KEY environment variable is not set.")

    this_repo = get_repo(repo, token=token)

    if pr_number is None:
        prs = list(get_pull_requests(this_repo))
        if not prs:
            console.print("[yellow]No open pull requests found.[/yellow]")
            return
        console.print("\nOpen pull requests:")
        for pr in prs:
            console.print(f"  [bold]#{pr.number}[/bold]  {pr.title}")
        pr_number = click.prompt("\nEnter the pull request number", type=int)

    try:
        summary = run_review(
            repo=repo,
            pr_number=pr_number,
            config=config,
            store=ctx.obj.get("store"),
            auto_confirm=yes,
            shadow=shadow,
            force_full=full_review,
            repo_obj=this_repo,
        )
    except ValueError as e:
        raise click.ClickException(str(e))

    if summary is not None and summary.failed_files:
        console.print(
            f"[yellow]{len(summary.failed_files)} file(s) failed. "
            "Run `hunkwise reset` and review again to retry them.[/yellow]"
        )
