"""Pull request reconciliation and the poll loop.

One reconciliation runs strictly in order:

    fetch history → reconstruct state → reply to commands → decide
                  → integrate (if ready) → labels → check run → ready preview

Nothing survives between reconciliations except what was written to the forge.
Different proposals share no local state and are reconciled in parallel.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from prflow_core.actions import Actuator
from prflow_core.errors import FatalError, TransientError
from prflow_core.guard import READY, REPLY, Guard, digest, reply_key
from prflow_core.integration import Integrator, decide
from prflow_core.models import CheckStatus, ProposalHistory
from prflow_core.state import reconstruct_state

if TYPE_CHECKING:
    from prflow_core.capabilities import Census, ForgeRepository, VersionControl
    from prflow_core.integration import Decision
    from prflow_core.models import CommandOutcome, Proposal, WorkflowState

logger = logging.getLogger(__name__)


@dataclass
class ReconcileResult:
    """What one reconciliation observed and did."""

    proposal_id: str
    state: WorkflowState | None = None
    decision: Decision | None = None
    actions: list[str] = field(default_factory=list)
    integrated_as: str | None = None
    error: str | None = None


def fetch_history(forge: ForgeRepository, proposal: Proposal, bot_user: str | None = None) -> ProposalHistory:
    """Fetch everything one reconciliation needs, starting from a fresh copy of the proposal."""
    current = forge.get_proposal(proposal.id)
    return ProposalHistory(
        proposal=current,
        comments=forge.list_comments(current.id),
        reviews=forge.list_reviews(current.id),
        checks=forge.list_checks(current.head_hash),
        labels=forge.list_labels(current.id),
        bot_user=bot_user or forge.current_user(),
    )


def _reply_body(outcome: CommandOutcome, prefix: str) -> str:
    command_line = next((line.strip() for line in outcome.comment_body.splitlines() if line.strip()), "")
    quoted = f"> {command_line}\n\n" if command_line.startswith(prefix) else ""
    return f"{quoted}@{outcome.author} {outcome.reply}"


def _ready_body(proposal: Proposal, message: str) -> str:
    return (
        f"@{proposal.author} This change can now be integrated. "
        f"The commit message will be:\n\n```\n{message}\n```"
    )


def _sync_labels(actuator: Actuator, state: WorkflowState, decision: Decision, config: dict) -> None:
    ready_label = config.get("ready_label")
    sponsor_label = config.get("sponsor_label")
    integrated_label = config.get("integrated_label")

    if decision.record is not None:
        actuator.add_label(integrated_label)
        actuator.remove_label(ready_label)
        actuator.remove_label(sponsor_label)
        return

    if state.ready_commit_message is not None:
        actuator.add_label(ready_label)
    else:
        actuator.remove_label(ready_label)

    if state.sponsor_required and not state.sponsor_requested:
        actuator.add_label(sponsor_label)
    else:
        actuator.remove_label(sponsor_label)


def _check_report(state: WorkflowState, decision: Decision) -> tuple[CheckStatus, str, str]:
    """Return the status, title and summary of the bot's own check run."""
    if decision.record is not None:
        return CheckStatus.SUCCESS, "Integrated", f"Pushed as commit {decision.record.commit_hash}."
    lines = [f"- {b}" for b in decision.blockers]
    if not decision.approved:
        return CheckStatus.IN_PROGRESS, f"{len(decision.blockers)} blocker(s)", "\n".join(lines)
    title = "Ready to integrate" if decision.ready else "Approved"
    lines += ["", "The commit message will be:", "", "```", state.commit_message, "```"]
    return CheckStatus.SUCCESS, title, "\n".join(lines).strip()


def _publish_check(
    actuator: Actuator, history: ProposalHistory, state: WorkflowState, decision: Decision, config: dict
) -> None:
    name = config.get("check_name")
    if not name:
        return
    status, title, summary = _check_report(state, decision)
    actuator.check(name, history.proposal.head_hash, status, title, summary, history.checks.get(name))


def reconcile(
    forge: ForgeRepository,
    vcs: VersionControl,
    census: Census,
    proposal: Proposal,
    config: dict,
    dry_run: bool = False,
    bot_user: str | None = None,
) -> ReconcileResult:
    """Bring one proposal up to date with its history.

    User-facing errors have already become replies by the time this returns.
    Transient and fatal errors are logged and reported in ``result.error``;
    they never propagate, so one proposal cannot stop the poll loop.
    """
    result = ReconcileResult(proposal_id=proposal.id)
    actuator: Actuator | None = None
    try:
        history = fetch_history(forge, proposal, bot_user)
        guard = Guard(history.comments, history.bot_user, history.labels)
        actuator = Actuator(forge, history.proposal.id, guard, dry_run=dry_run)

        state = reconstruct_state(history, census, config)
        result.state = state

        prefix = config.get("command_prefix", "/")
        position = {c.id: i for i, c in enumerate(history.comments)}
        for outcome in sorted(state.outcomes, key=lambda o: position[o.comment_id]):
            comment = history.comments[position[outcome.comment_id]]
            actuator.comment(REPLY, reply_key(comment), _reply_body(outcome, prefix))

        decision = decide(state, history, guard)
        result.decision = decision

        if decision.ready:
            integrated = Integrator(forge, vcs, actuator).execute(history, decision)
            if integrated is not None:
                result.integrated_as = integrated
                decision = decide(state, history, guard)
                result.decision = decision

        _sync_labels(actuator, state, decision, config)
        _publish_check(actuator, history, state, decision, config)

        if decision.record is None and state.ready_commit_message is not None:
            actuator.comment(
                READY,
                digest(state.ready_commit_message),
                _ready_body(history.proposal, state.ready_commit_message),
                edit=True,
            )

        if (
            decision.record is not None
            and history.proposal.is_open
            and config.get("close_after_integration", True)
        ):
            actuator.close()
    except TransientError as e:
        logger.warning("#%s: transient failure, will retry next cycle: %s", proposal.id, e)
        result.error = str(e)
    except FatalError as e:
        logger.error("#%s: giving up on this pull request for now: %s", proposal.id, e)
        result.error = str(e)

    if actuator is not None:
        result.actions = list(actuator.performed)
    return result


class Engine:
    """Polls a forge and reconciles every open proposal."""

    def __init__(self, forge: ForgeRepository, vcs: VersionControl, census: Census, config: dict):
        self._forge = forge
        self._vcs = vcs
        self._census = census
        self._config = config

    def _wanted(self, proposal: Proposal) -> bool:
        branches = self._config.get("target_branches") or []
        return not branches or proposal.target_ref in branches

    def run_once(self, dry_run: bool = False) -> list[ReconcileResult]:
        """Reconcile every open proposal once, in parallel across proposals."""
        try:
            bot_user = self._forge.current_user()
            proposals = [p for p in self._forge.open_proposals() if self._wanted(p)]
        except (TransientError, FatalError) as e:
            logger.warning("Could not list pull requests: %s", e)
            return []

        logger.info("Reconciling %d pull request(s)", len(proposals))
        workers = max(1, int(self._config.get("workers", 4)))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = [pool.submit(self._reconcile_one, p, bot_user, dry_run) for p in proposals]
            return [f.result() for f in futures]

    def _reconcile_one(self, proposal: Proposal, bot_user: str, dry_run: bool) -> ReconcileResult:
        try:
            return reconcile(
                self._forge,
                self._vcs,
                self._census,
                proposal,
                self._config,
                dry_run=dry_run,
                bot_user=bot_user,
            )
        except Exception as e:  # noqa: BLE001
            # A bug while handling one pull request must not take the others down.
            logger.exception("#%s: unexpected error during reconciliation", proposal.id)
            return ReconcileResult(proposal_id=proposal.id, error=f"{type(e).__name__}: {e}")

    def run(self, once: bool = False, dry_run: bool = False) -> None:
        interval = self._config.get("poll_interval", 60)
        while True:
            started = time.monotonic()
            results = self.run_once(dry_run=dry_run)
            integrated = [r for r in results if r.integrated_as]
            logger.info(
                "Poll cycle done: %d pull request(s), %d integrated, %d error(s)",
                len(results),
                len(integrated),
                sum(1 for r in results if r.error),
            )
            if once:
                return
            time.sleep(max(0.0, interval - (time.monotonic() - started)))
