"""status command — show the workflow state of a pull request without acting on it."""

from __future__ import annotations

import click
from rich.console import Console
from rich.table import Table

from prflow_core.engine import fetch_history
from prflow_core.errors import PrflowError
from prflow_core.guard import Guard
from prflow_core.integration import decide
from prflow_core.models import Verdict
from prflow_core.state import reconstruct_state

console = Console()

_verdict_style = {
    Verdict.APPROVED: "green",
    Verdict.DISAPPROVED: "red",
    Verdict.NONE: "yellow",
}


@click.command("status")
@click.option("--repo", required=True, help="GitHub repository (owner/name).")
@click.option("--pr", "pr_number", type=int, required=True, help="Pull request number.")
@click.pass_context
def status_cmd(ctx, repo: str, pr_number: int):
    """Show reviews, contributors and what still blocks integration.

    The state is replayed from the pull request's conversation exactly as the
    bot would see it. Nothing is posted.
    """
    from prflow_cli.session import open_session

    session = open_session(ctx, repo)
    try:
        proposal = session.forge.get_proposal(str(pr_number))
        history = fetch_history(session.forge, proposal)
        state = reconstruct_state(history, session.census, session.config)
    except PrflowError as e:
        raise click.ClickException(f"Could not read #{pr_number}: {e}")
    decision = decide(state, history, Guard(history.comments, history.bot_user, history.labels))
    proposal = history.proposal

    console.print(f"\n[bold]#{proposal.id}[/bold] {proposal.title}")
    console.print(f"  {proposal.source_ref} → {proposal.target_ref} @ {proposal.head_hash[:7]}")

    table = Table(title="Reviews", show_header=True, header_style="bold cyan")
    table.add_column("Reviewer", style="bold")
    table.add_column("Verdict", width=12)
    table.add_column("SHA", width=8)
    table.add_column("Submitted At", width=20)
    for reviewer, review in state.reviewers.items():
        style = _verdict_style.get(review.verdict, "white")
        sha = review.hash[:7] if review.hash == proposal.head_hash else f"[dim]{review.hash[:7]}[/dim]"
        table.add_row(
            reviewer,
            f"[{style}]{review.verdict.value}[/{style}]",
            sha,
            review.submitted_at.strftime("%Y-%m-%d %H:%M:%S"),
        )
    console.print(table)
    console.print(f"Required approvals: {state.required_approvals}")

    if state.contributors:
        console.print("\n[bold]Contributors:[/bold]")
        for contributor in state.contributors:
            console.print(f"  - {contributor}")

    if state.integration_requested:
        console.print(f"\nIntegration requested by: {', '.join(sorted(state.integrators))}")
    if state.sponsors:
        console.print(f"Sponsored by: {', '.join(sorted(state.sponsors))}")

    if decision.record is not None:
        console.print(f"\n[green]Integrated as {decision.record.commit_hash}.[/green]")
    elif decision.blockers:
        heading = "Approved, still waiting for:" if decision.approved else "Blockers:"
        console.print(f"\n[bold]{heading}[/bold]")
        for blocker in decision.blockers:
            console.print(f"  - [red]{blocker}[/red]")
    else:
        console.print("\n[green]Ready to integrate.[/green]")

    if state.ready_commit_message is not None and decision.record is None:
        console.print("\n[bold]Commit message:[/bold]")
        console.print(state.ready_commit_message, markup=False)
