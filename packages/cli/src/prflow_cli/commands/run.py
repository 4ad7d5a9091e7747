"""run command — poll a repository and reconcile its open pull requests."""

from __future__ import annotations

import click
from rich.console import Console

from prflow_core.engine import Engine

console = Console()


@click.command("run")
@click.option("--repo", required=True, help="GitHub repository in owner/name format.")
@click.option("--once", is_flag=True, help="Run a single poll cycle and exit.")
@click.option("--workers", type=int, default=None, help="Pull requests reconciled in parallel. Overrides config file.")
@click.option(
    "--interval",
    "poll_interval",
    type=float,
    default=None,
    help="Seconds between poll cycles. Overrides config file.",
)
@click.option(
    "--dry-run",
    "-n",
    "dry_run",
    is_flag=True,
    help="Log what would be posted and pushed without changing anything on GitHub.",
)
@click.pass_context
def run_cmd(ctx, repo: str, once: bool, workers: int | None, poll_interval: float | None, dry_run: bool):
    """Watch a repository and act on pull request commands.

    Every cycle, each open pull request's comments, reviews and checks are
    replayed, commands are answered, and changes that are approved, green
    and requested with /integrate are pushed to their target branch.

    \b
    Environment variables:
      PRFLOW_TOKEN         GitHub token of the bot account
      GITHUB_TOKEN         used when PRFLOW_TOKEN is not set (or use gh CLI)
    """
    from prflow_cli.session import open_session

    config = ctx.obj["config"]
    if workers is not None:
        config["workers"] = workers
    if poll_interval is not None:
        config["poll_interval"] = poll_interval

    session = open_session(ctx, repo)
    engine = Engine(session.forge, session.vcs, session.census, session.config)

    if dry_run:
        console.print("[yellow]Dry run: nothing will be posted or pushed.[/yellow]")
    console.print(f"Watching [bold cyan]{repo}[/bold cyan] (Ctrl+C to stop)" if not once else f"Reconciling {repo}")
    try:
        engine.run(once=once, dry_run=dry_run)
    except KeyboardInterrupt:
        console.print("\n[yellow]Stopped.[/yellow]")
