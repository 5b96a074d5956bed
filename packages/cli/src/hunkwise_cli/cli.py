"""CLI entry point for hunkwise.

Commands:
  review   — run a resumable AI review on a pull request
  status   — show the stored review progress for a pull request
  reset    — discard the stored review progress so the next run starts fresh
"""

from __future__ import annotations

import importlib.metadata
import logging

import click
from rich.console import Console
from rich.logging import RichHandler

from hunkwise_cli.commands.review import review_cmd
from hunkwise_cli.commands.state import reset_cmd, status_cmd

console = Console()


def _build_store(config: dict):
    """Instantiate the configured state store from .hunkwise.yml settings.

    Store selection hierarchy:
      store: comment → PRCommentStateStore (requires a GitHub token; the default)
      store: gist    → GistStateStore  (requires gist_id and a GitHub token)
      store: sqlite  → SQLiteStateStore (uses store_path or .hunkwise.db)
      store: noop    → NoOpStateStore  (no persistence, every run starts cold)

    This factory lives in cli.py so neither hunkwise_core nor hunkwise_store
    know about the CLI config format.
    """
    from hunkwise_store.noop import NoOpStateStore

    store_type = config.get("store", "comment")
    token = config.get("github_token")

    if store_type == "comment":
        if not token:
            console.print("[yellow]The comment store requires a GitHub token. Falling back to no store.[/yellow]")
            return NoOpStateStore()
        from hunkwise_store.comment import PRCommentStateStore

        return PRCommentStateStore(token=token)

    if store_type == "gist":
        from hunkwise_store.gist import GistStateStore

        gist_id = config.get("gist_id")
        if not gist_id or not token:
            console.print("[yellow]GistStateStore requires gist_id and a GitHub token. Falling back to no store.[/yellow]")
            return NoOpStateStore()
        return GistStateStore(gist_id=gist_id, token=token)

    if store_type == "sqlite":
        from hunkwise_store.sqlite import SQLiteStateStore

        return SQLiteStateStore(db_path=config.get("store_path", ".hunkwise.db"))

    if store_type != "noop":
        console.print(f"[yellow]Unknown store {store_type!r}. Falling back to no store.[/yellow]")
    return NoOpStateStore()


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(name)s: %(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )


@click.group()
@click.version_option(
    version=importlib.metadata.version("hunkwise"),
    prog_name="hunkwise",
)
@click.option(
    "--config",
    "config_path",
    default=".hunkwise.yml",
    show_default=True,
    help="Path to the configuration file.",
    envvar="HUNKWISE_CONFIG",
)
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging (retries, resume decisions, packing).")
@click.pass_context
def main(ctx: click.Context, config_path: str, verbose: bool):
    """Resumable AI code review for GitHub pull requests."""
    from hunkwise_core.config import load_config
    from hunkwise_cli.auth import resolve_github_token

    _configure_logging(verbose)
    ctx.ensure_object(dict)

    config = load_config(config_path)

    # Resolve token early so all subcommands share the same resolution.
    token = resolve_github_token()
    if token:
        config["github_token"] = token

    store = _build_store(config)
    ctx.obj["store"] = store
    ctx.obj["config"] = config
    ctx.obj["config_path"] = config_path
    ctx.call_on_close(store.close)


main.add_command(review_cmd)
main.add_command(status_cmd)
main.add_command(reset_cmd)
