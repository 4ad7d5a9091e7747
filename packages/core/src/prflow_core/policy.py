"""Who may issue which command.

Every rule is a function of the command, the actor, the actor's census roles,
the proposal and the author's census roles. Roles are looked up again on each
reconciliation, so a role change applies to commands issued earlier without
anyone having to repeat them.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from prflow_core.commands import Command
from prflow_core.models import Proposal, Role

ONLY_AUTHOR = "Only the author of this change may issue that command."
ONLY_AUTHOR_OR_COMMITTER = "Only the author of this change or a Committer may issue that command."
ONLY_COMMITTER_SPONSOR = "Only Committers may sponsor a change."
NO_SPONSOR_NEEDED = "The author of this change is a Committer and does not need a sponsor."


@dataclass(frozen=True)
class Allowed:
    pass


@dataclass(frozen=True)
class Denied:
    reason: str


PolicyResult = Allowed | Denied
Rule = Callable[[str, frozenset, Proposal, frozenset], PolicyResult]


def _author_only(actor, roles, proposal, author_roles) -> PolicyResult:
    if actor == proposal.author:
        return Allowed()
    return Denied(ONLY_AUTHOR)


def _author_or_committer(actor, roles, proposal, author_roles) -> PolicyResult:
    if actor == proposal.author or Role.COMMITTER in roles:
        return Allowed()
    return Denied(ONLY_AUTHOR_OR_COMMITTER)


def _sponsor(actor, roles, proposal, author_roles) -> PolicyResult:
    if Role.COMMITTER not in roles:
        return Denied(ONLY_COMMITTER_SPONSOR)
    if Role.COMMITTER in author_roles:
        return Denied(NO_SPONSOR_NEEDED)
    return Allowed()


def _anyone(actor, roles, proposal, author_roles) -> PolicyResult:
    return Allowed()


_RULES: dict[str, Rule] = {
    "contributor": _author_only,
    "reviewers": _author_or_committer,
    "integrate": _author_or_committer,
    "sponsor": _sponsor,
    "help": _anyone,
}


def authorize(
    command: Command,
    actor: str,
    actor_roles: frozenset,
    proposal: Proposal,
    author_roles: frozenset,
) -> PolicyResult:
    rule = _RULES.get(command.name)
    if rule is None:
        return Denied(f"Unknown command `{command.name}`.")
    return rule(actor, actor_roles, proposal, author_roles)
