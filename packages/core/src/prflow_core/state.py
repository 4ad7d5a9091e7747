"""Workflow state reconstruction.

The state of a proposal is never stored. It is recomputed on every
reconciliation by replaying the proposal's comments in conversation order,
folding each command into an accumulator, and freezing the result together
with the aggregated reviews and check results. Replaying the same history
twice gives equal states.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from prflow_core.checks import check_blockers
from prflow_core.commands import Command, Malformed, help_text, parse_command
from prflow_core.errors import AuthorizationError, StateError
from prflow_core.issues import DEFAULT_ISSUE_PATTERN
from prflow_core.message import build_commit_message
from prflow_core.models import CommandError, CommandOutcome, Comment, Contributor, Role, WorkflowState
from prflow_core.policy import Denied, authorize
from prflow_core.reviews import aggregate_reviews, review_blockers

if TYPE_CHECKING:
    from prflow_core.capabilities import Census
    from prflow_core.models import ProposalHistory

logger = logging.getLogger(__name__)


class _RoleLookup:
    """Census lookups memoized for the duration of one replay."""

    def __init__(self, census: Census, project: str | None):
        self._census = census
        self._project = project
        self._roles: dict[str, frozenset] = {}

    def __call__(self, actor: str) -> frozenset:
        if actor not in self._roles:
            self._roles[actor] = frozenset(self._census.roles_of(actor, self._project))
        return self._roles[actor]


class _Replay:
    def __init__(self, history: ProposalHistory, roles_of: _RoleLookup, config: dict):
        self.proposal = history.proposal
        self.roles_of = roles_of
        self.prefix = config.get("command_prefix", "/")
        self.contributors: list[Contributor] = []
        self.outcomes: list[CommandOutcome] = []
        self.integrators: set[str] = set()
        self.sponsors: set[str] = set()
        self.requested_reviewers = config.get("required_approvals", 1)

    def apply(self, comment: Comment) -> None:
        parsed = parse_command(comment.body, self.prefix)
        if parsed is None:
            return
        if isinstance(parsed, Malformed):
            self._fail(comment, parsed.name, "syntax", parsed.message)
            return

        actor_roles = self.roles_of(comment.author)
        author_roles = self.roles_of(self.proposal.author)
        handler = getattr(self, f"_do_{parsed.name}")
        try:
            verdict = authorize(parsed, comment.author, actor_roles, self.proposal, author_roles)
            if isinstance(verdict, Denied):
                raise AuthorizationError(verdict.reason)
            reply = handler(parsed, comment)
        except AuthorizationError as e:
            self._fail(comment, parsed.name, "authorization", str(e))
            return
        except StateError as e:
            self._fail(comment, parsed.name, "state", str(e))
            return
        self.outcomes.append(CommandOutcome(comment.id, comment.body, comment.author, parsed.name, reply))

    def _fail(self, comment: Comment, command: str, kind: str, message: str) -> None:
        logger.debug("Command %s in comment %s rejected (%s): %s", command, comment.id, kind, message)
        error = CommandError(comment_id=comment.id, kind=kind, message=message)
        self.outcomes.append(CommandOutcome(comment.id, comment.body, comment.author, command, message, error))

    def _do_contributor(self, command: Command, comment: Comment) -> str:
        action, name, email = command.args
        contributor = Contributor(name, email)
        if action == "add":
            if contributor in self.contributors:
                raise StateError(f"Contributor `{contributor}` has already been added.")
            self.contributors.append(contributor)
            return f"Contributor `{contributor}` successfully added."
        if contributor not in self.contributors:
            raise StateError(f"Contributor `{contributor}` was not found.")
        self.contributors.remove(contributor)
        return f"Contributor `{contributor}` successfully removed."

    def _do_reviewers(self, command: Command, comment: Comment) -> str:
        (count,) = command.args
        self.requested_reviewers = max(self.requested_reviewers, count)
        # Quote the request, not the running maximum, so the reply is the same in any interleaving.
        return f"This change now requires at least {count} approving review(s) from Committers."

    def _do_integrate(self, command: Command, comment: Comment) -> str:
        self.integrators.add(comment.author)
        if Role.COMMITTER in self.roles_of(comment.author):
            return "This change will be integrated as soon as all requirements are met."
        return (
            "This change will be integrated as soon as all requirements are met "
            "and a Committer has issued `/sponsor`."
        )

    def _do_sponsor(self, command: Command, comment: Comment) -> str:
        self.sponsors.add(comment.author)
        return f"@{comment.author} is sponsoring this change."

    def _do_help(self, command: Command, comment: Comment) -> str:
        return help_text()


def reconstruct_state(history: ProposalHistory, census: Census, config: dict) -> WorkflowState:
    """Replay a proposal's history into its current WorkflowState."""
    proposal = history.proposal
    roles_of = _RoleLookup(census, proposal.project or config.get("project"))
    replay = _Replay(history, roles_of, config)

    for comment in history.comments:
        if comment.author == history.bot_user:
            continue
        replay.apply(comment)

    reviewers = aggregate_reviews(history.reviews)
    blockers = review_blockers(
        reviewers,
        proposal,
        roles_of,
        replay.requested_reviewers,
        config.get("count_stale_approvals", True),
    )
    own_check = config.get("check_name")
    checks = {name: check for name, check in history.checks.items() if name != own_check}
    blockers += check_blockers(checks, proposal.head_hash, config.get("required_checks"))

    message = build_commit_message(proposal, replay.contributors, config.get("issue_pattern") or DEFAULT_ISSUE_PATTERN)
    # Grouped by actor, each actor's commands in stream order: the same for every
    # interleaving of different actors' comments. sorted() is stable.
    outcomes = tuple(sorted(replay.outcomes, key=lambda o: o.author))
    integration_requested = bool(replay.integrators)
    # A Committer issuing /integrate on the author's behalf acts as the sponsor.
    sponsor_required = integration_requested and not any(
        Role.COMMITTER in roles_of(actor) for actor in (proposal.author, *replay.integrators)
    )

    return WorkflowState(
        reviewers=reviewers,
        contributors=tuple(replay.contributors),
        outcomes=outcomes,
        command_errors=tuple(o.error for o in outcomes if o.error is not None),
        integration_requested=integration_requested,
        integrators=frozenset(replay.integrators),
        sponsor_requested=bool(replay.sponsors),
        sponsors=frozenset(replay.sponsors),
        sponsor_required=sponsor_required,
        required_approvals=replay.requested_reviewers,
        blockers=tuple(blockers),
        commit_message=message,
        ready_commit_message=None if blockers else message,
    )
