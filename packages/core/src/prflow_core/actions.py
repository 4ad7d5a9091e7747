"""Guarded side effects on a single proposal."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable

from prflow_core.guard import digest, marker

if TYPE_CHECKING:
    from prflow_core.capabilities import ForgeRepository
    from prflow_core.guard import Guard
    from prflow_core.models import Check, CheckStatus

logger = logging.getLogger(__name__)


class Actuator:
    """Performs the bot's side effects on one proposal, each at most once.

    Every comment carries a marker, and the guard is consulted before acting,
    so repeating a reconciliation over an unchanged history changes nothing.
    In dry-run mode actions are logged and listed in ``performed`` but never
    sent to the forge.
    """

    def __init__(self, forge: ForgeRepository, proposal_id: str, guard: Guard, dry_run: bool = False):
        self.forge = forge
        self.proposal_id = proposal_id
        self.guard = guard
        self.dry_run = dry_run
        self.performed: list[str] = []

    def comment(self, kind: str, key: str, body: str, edit: bool = False) -> bool:
        """Post ``body`` with a ``kind: key`` marker unless that marker is already there.

        With ``edit``, the newest earlier comment of the same kind is rewritten
        instead, so the conversation keeps a single up-to-date copy.
        """
        if self.guard.seen(kind, key):
            return False
        text = f"{body}\n{marker(kind, key)}"
        existing = self.guard.comment_id(kind) if edit else None
        if existing is not None:
            self._do(
                f"edit comment {kind} {key}",
                lambda: self.forge.update_comment(self.proposal_id, existing, text),
            )
        else:
            self._do(f"comment {kind} {key}", lambda: self.forge.post_comment(self.proposal_id, text))
        self.guard.remember(kind, key)
        return True

    def check(
        self, name: str, head_hash: str, status: CheckStatus, title: str, summary: str, existing: Check | None
    ) -> bool:
        """Report the bot's own check run, skipping reports identical to ``existing``.

        The digest of the report is stored as the run's external id, which is
        how an unchanged report is recognized on the next cycle.
        """
        key = digest(f"{status.value}\n{title}\n{summary}")
        current = existing if existing is not None and existing.hash == head_hash else None
        if current is not None and current.metadata == key:
            return False
        if current is not None and current.id:
            self._do(
                f"update check {name} {status.value}",
                lambda: self.forge.update_check(current.id, status, title, summary, key),
            )
        else:
            self._do(
                f"create check {name} {status.value}",
                lambda: self.forge.create_check(head_hash, name, status, title, summary, key),
            )
        return True

    def add_label(self, name: str) -> bool:
        if not name or name in self.guard.labels:
            return False
        self._do(f"add label {name}", lambda: self.forge.add_label(self.proposal_id, name))
        self.guard.labels.add(name)
        return True

    def remove_label(self, name: str) -> bool:
        if not name or name not in self.guard.labels:
            return False
        self._do(f"remove label {name}", lambda: self.forge.remove_label(self.proposal_id, name))
        self.guard.labels.discard(name)
        return True

    def close(self) -> None:
        self._do("close", lambda: self.forge.close_proposal(self.proposal_id))

    def record(self, description: str) -> None:
        """Note an action performed elsewhere (e.g. a push) in ``performed``."""
        self.performed.append(description)

    def _do(self, description: str, action: Callable[[], object]) -> None:
        self.performed.append(description)
        if self.dry_run:
            logger.info("[dry-run] #%s: would %s", self.proposal_id, description)
            return
        logger.debug("#%s: %s", self.proposal_id, description)
        action()
