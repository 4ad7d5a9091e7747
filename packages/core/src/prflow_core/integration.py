"""Integration decision and execution.

``decide`` is pure: it turns a WorkflowState and the observed markers into a
Decision. ``Integrator.execute`` performs the integration for a ready decision:
it re-verifies that nobody integrated the head in the meantime, squashes the
change (merged with the target first if the target moved on) onto the current
target tip and pushes it with a compare-and-swap on the target ref. The
forge's refusal to move a ref that changed underneath us is the only mutual
exclusion between concurrent engine replicas.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from prflow_core.errors import ConflictError
from prflow_core.guard import CONFLICT, INTEGRATED, Guard

if TYPE_CHECKING:
    from prflow_core.actions import Actuator
    from prflow_core.capabilities import ForgeRepository, VersionControl
    from prflow_core.models import IntegrationRecord, Proposal, ProposalHistory, WorkflowState

logger = logging.getLogger(__name__)

NOT_REQUESTED = "Integration has not been requested with `/integrate`."
NEEDS_SPONSOR = "A Committer must sponsor this change with `/sponsor`."
CLOSED = "The pull request is closed."


@dataclass(frozen=True)
class Decision:
    blockers: tuple[str, ...]
    record: IntegrationRecord | None
    commit_message: str

    @property
    def approved(self) -> bool:
        """True when only the explicit integration request (or its sponsor) is missing."""
        return not [b for b in self.blockers if b not in (NOT_REQUESTED, NEEDS_SPONSOR)]

    @property
    def ready(self) -> bool:
        return not self.blockers and self.record is None


def decide(state: WorkflowState, history: ProposalHistory, guard: Guard) -> Decision:
    proposal = history.proposal
    blockers = list(state.blockers)
    if not proposal.is_open:
        blockers.append(CLOSED)
    if not state.integration_requested:
        blockers.append(NOT_REQUESTED)
    elif state.sponsor_required and not state.sponsor_requested:
        blockers.append(NEEDS_SPONSOR)
    return Decision(
        blockers=tuple(blockers),
        record=guard.integration_record(proposal.head_hash),
        commit_message=state.commit_message,
    )


class Integrator:
    def __init__(self, forge: ForgeRepository, vcs: VersionControl, actuator: Actuator):
        self._forge = forge
        self._vcs = vcs
        self._actuator = actuator

    def execute(self, history: ProposalHistory, decision: Decision) -> str | None:
        """Integrate a ready proposal and return the resulting target commit, or None.

        Raises TransientError (from the collaborators) when the attempt should
        simply be repeated on the next cycle.
        """
        proposal = history.proposal

        # Another replica may have finished since the history was fetched.
        fresh = Guard(self._forge.list_comments(proposal.id), history.bot_user)
        record = fresh.integration_record(proposal.head_hash)
        if record is not None:
            logger.info("#%s: %s already integrated as %s", proposal.id, proposal.head_hash[:7], record.commit_hash[:7])
            self._actuator.guard.remember(INTEGRATED, f"{record.head_hash} {record.commit_hash}")
            return record.commit_hash

        target_hash = self._vcs.resolve(proposal.target_ref)
        head_tree = self._vcs.tree_of(proposal.head_hash)

        # A previous push succeeded but its record was never written, possibly
        # with other changes landed on top of it since.
        landed = self._landed(proposal, target_hash, head_tree, decision.commit_message)
        if landed is not None:
            logger.info(
                "#%s: %s already holds the change as %s; recording it", proposal.id, proposal.target_ref, landed[:7]
            )
            self._finish(proposal, landed)
            return landed

        conflict_key = f"{proposal.head_hash}:{target_hash}"
        if self._actuator.guard.seen(CONFLICT, conflict_key):
            logger.debug("#%s: conflict with %s already reported", proposal.id, target_hash[:7])
            return None

        fast_forward = self._vcs.is_ancestor(target_hash, proposal.head_hash)
        if self._actuator.dry_run:
            verb = "push" if fast_forward else "merge and push"
            self._actuator.record(f"{verb} {proposal.head_hash[:7]} onto {proposal.target_ref}")
            logger.info("[dry-run] #%s: would %s onto %s", proposal.id, verb, proposal.target_ref)
            return None

        tree = head_tree
        if not fast_forward:
            try:
                tree = self._vcs.merge_tree(target_hash, proposal.head_hash)
            except ConflictError as e:
                logger.info("#%s: %s", proposal.id, e)
                self._report_conflict(proposal, target_hash)
                return None
            logger.info("#%s: %s moved on; merged cleanly into %s", proposal.id, proposal.target_ref, target_hash[:7])

        commit = self._vcs.commit(
            tree,
            target_hash,
            decision.commit_message,
            proposal.author_name or proposal.author,
            proposal.author_email,
        )
        try:
            pushed = self._vcs.push(commit, proposal.target_ref, target_hash)
        except ConflictError as e:
            logger.info("#%s: push rejected: %s", proposal.id, e)
            current = self._vcs.resolve(proposal.target_ref)
            if self._landed(proposal, current, head_tree, decision.commit_message) is not None:
                # Another replica pushed this change first; the next cycle records it.
                return None
            # Key the report by the tip that won, so the next cycle recognizes it.
            self._report_conflict(proposal, current)
            return None

        self._actuator.record(f"push {pushed[:7]} onto {proposal.target_ref}")
        logger.info("#%s: pushed %s onto %s", proposal.id, pushed[:7], proposal.target_ref)
        self._finish(proposal, pushed)
        return pushed

    def _landed(self, proposal: Proposal, target_hash: str, head_tree: str, message: str) -> str | None:
        if self._vcs.tree_of(target_hash) == head_tree:
            return target_hash
        return self._vcs.find_landed(target_hash, proposal.head_hash, message)

    def _report_conflict(self, proposal: Proposal, target_hash: str) -> None:
        self._actuator.comment(
            CONFLICT,
            f"{proposal.head_hash}:{target_hash}",
            f"@{proposal.author} this change cannot be integrated automatically: "
            f"`{proposal.target_ref}` has moved to {target_hash[:12]} and the change must be rebased.",
        )

    def _finish(self, proposal: Proposal, commit_hash: str) -> None:
        self._actuator.comment(
            INTEGRATED,
            f"{proposal.head_hash} {commit_hash}",
            f"Pushed as commit {commit_hash}.",
        )
