"""status and reset commands — inspect or discard stored review progress."""

from __future__ import annotations

import click
from rich.console import Console
from rich.table import Table

from hunkwise_core.gh.pull_request import state_key
from hunkwise_core.state import deserialize_state, get_progress_summary

console = Console()

_STATUS_STYLE = {
    "reviewed": "green",
    "skipped": "dim",
    "failed": "red",
    "pending": "white",
    "summarizing": "yellow",
    "summarized": "cyan",
    "reviewing": "yellow",
}


def _require_store(ctx):
    from hunkwise_store.noop import NoOpStateStore

    store = ctx.obj.get("store") if ctx.obj else None
    if store is None or isinstance(store, NoOpStateStore):
        raise click.UsageError(
            "No state store configured. Set 'store: comment', 'store: sqlite' or 'store: gist' in .hunkwise.yml."
        )
    return store


@click.command("status")
@click.option("--repo", required=True, help="GitHub repository (owner/name).")
@click.option("--pr", "pr_number", type=int, required=True, help="Pull request number.")
@click.pass_context
def status_cmd(ctx, repo: str, pr_number: int):
    """Show the stored review progress for a pull request."""
    store = _require_store(ctx)
    state = deserialize_state(store.load(state_key(repo, pr_number)))
    if state is None:
        console.print(f"[yellow]No review progress stored for {repo}#{pr_number}.[/yellow]")
        return

    table = Table(
        title=f"Review progress — {repo}#{pr_number} @ {state.commit_id[:7]} ({state.phase})",
        show_header=True,
        header_style="bold cyan",
    )
    table.add_column("File", max_width=60)
    table.add_column("Status", width=12)
    table.add_column("Detail", max_width=50)
    table.add_column("Updated At", width=20)

    for f in state.files:
        style = _STATUS_STYLE.get(f.status, "white")
        table.add_row(
            f.filename,
            f"[{style}]{f.status}[/{style}]",
            f.error or f.skip_reason or "",
            f.updated_at[:19].replace("T", " "),
        )

    console.print(table)
    console.print(get_progress_summary(state))


@click.command("reset")
@click.option("--repo", required=True, help="GitHub repository (owner/name).")
@click.option("--pr", "pr_number", type=int, required=True, help="Pull request number.")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompt.")
@click.pass_context
def reset_cmd(ctx, repo: str, pr_number: int, yes: bool):
    """Discard stored review progress so the next review starts fresh."""
    store = _require_store(ctx)
    if not yes:
        click.confirm(f"Discard stored review progress for {repo}#{pr_number}?", abort=True)
    store.delete(state_key(repo, pr_number))
    console.print(f"[green]Review progress for {repo}#{pr_number} discarded.[/green]")
