"""reconcile command — bring a single pull request up to date."""

from __future__ import annotations

import click
from rich.console import Console

from prflow_core.engine import ReconcileResult, reconcile
from prflow_core.errors import PrflowError

console = Console()


def print_result(result: ReconcileResult, dry_run: bool) -> None:
    """Print what a reconciliation did (or, in a dry run, would have done)."""
    if result.error:
        console.print(f"[red]#{result.proposal_id}: {result.error}[/red]")

    verb = "Would perform" if dry_run else "Performed"
    if result.actions:
        console.print(f"\n[bold]{verb} {len(result.actions)} action(s) on #{result.proposal_id}:[/bold]")
        for action in result.actions:
            console.print(f"  - {action}")
    elif not result.error:
        console.print(f"[dim]#{result.proposal_id}: nothing to do.[/dim]")

    if result.integrated_as:
        console.print(f"[green]Integrated as {result.integrated_as}.[/green]")
    elif result.decision is not None and result.decision.blockers:
        console.print("\n[bold]Not ready to integrate:[/bold]")
        for blocker in result.decision.blockers:
            console.print(f"  - {blocker}")


@click.command("reconcile")
@click.option("--repo", required=True, help="GitHub repository in owner/name format.")
@click.option(
    "--pr",
    "pr_number",
    type=int,
    default=None,
    help="Pull request number. Omit to list open PRs interactively.",
)
@click.option(
    "--dry-run",
    "-n",
    "dry_run",
    is_flag=True,
    help="Print the replies, labels and pushes without performing them.",
)
@click.pass_context
def reconcile_cmd(ctx, repo: str, pr_number: int | None, dry_run: bool):
    """Reconcile one pull request now instead of waiting for the next poll."""
    from prflow_cli.session import open_session

    session = open_session(ctx, repo)

    if pr_number is None:
        try:
            proposals = session.forge.open_proposals()
        except PrflowError as e:
            raise click.ClickException(f"Could not list pull requests: {e}")
        if not proposals:
            console.print("[yellow]No open pull requests found.[/yellow]")
            return
        console.print("\nOpen pull requests:")
        for p in proposals:
            console.print(f"  [bold]#{p.id}[/bold]  {p.title}")
        pr_number = click.prompt("\nEnter the pull request number", type=int)

    try:
        proposal = session.forge.get_proposal(str(pr_number))
    except PrflowError as e:
        raise click.ClickException(f"Could not read #{pr_number}: {e}")
    result = reconcile(session.forge, session.vcs, session.census, proposal, session.config, dry_run=dry_run)
    print_result(result, dry_run)
