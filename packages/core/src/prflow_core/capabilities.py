"""Abstract collaborators of the workflow engine.

The engine depends on these interfaces only, never on a concrete forge's API
shape, so a GitLab-style forge can be added without touching engine code.
Implementations must raise TransientError for failures that are worth retrying
on the next poll cycle (timeouts, 5xx, rate limits) and FatalError for
inconsistencies that retrying will not fix.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from prflow_core.models import Check, CheckStatus, Comment, Proposal, Review, Role


class ForgeRepository(ABC):
    """Pull request data and conversation on one hosted repository."""

    @abstractmethod
    def current_user(self) -> str:
        """Return the login the engine acts as; its comments carry the markers."""

    @abstractmethod
    def open_proposals(self) -> list[Proposal]:
        """Return every open proposal."""

    @abstractmethod
    def get_proposal(self, proposal_id: str) -> Proposal:
        """Return one proposal by id."""

    @abstractmethod
    def list_comments(self, proposal_id: str) -> list[Comment]:
        """Return the proposal's conversation, oldest first."""

    @abstractmethod
    def list_reviews(self, proposal_id: str) -> list[Review]:
        """Return submitted reviews, oldest first."""

    @abstractmethod
    def list_checks(self, head_hash: str) -> dict[str, Check]:
        """Return the latest report of each named check for a commit."""

    @abstractmethod
    def list_labels(self, proposal_id: str) -> list[str]:
        """Return the labels currently set on the proposal."""

    @abstractmethod
    def post_comment(self, proposal_id: str, body: str) -> Comment:
        """Append a comment to the proposal's conversation."""

    @abstractmethod
    def update_comment(self, proposal_id: str, comment_id: str, body: str) -> None:
        """Replace the body of a comment the engine posted earlier."""

    @abstractmethod
    def create_check(
        self, head_hash: str, name: str, status: CheckStatus, title: str, summary: str, external_id: str
    ) -> Check:
        """Report a check run on a commit and return it."""

    @abstractmethod
    def update_check(self, check_id: str, status: CheckStatus, title: str, summary: str, external_id: str) -> None:
        """Update a check run created by ``create_check``."""

    @abstractmethod
    def add_label(self, proposal_id: str, name: str) -> None:
        """Add a label."""

    @abstractmethod
    def remove_label(self, proposal_id: str, name: str) -> None:
        """Remove a label. Removing a label that is not set is not an error."""

    @abstractmethod
    def close_proposal(self, proposal_id: str) -> None:
        """Close the proposal without merging it through the forge."""


class VersionControl(ABC):
    """Commit and ref operations on the repository being integrated into."""

    @abstractmethod
    def resolve(self, ref: str) -> str:
        """Return the commit hash a branch currently points at."""

    @abstractmethod
    def tree_of(self, commit_hash: str) -> str:
        """Return the tree hash of a commit."""

    @abstractmethod
    def is_ancestor(self, ancestor: str, descendant: str) -> bool:
        """Return True if ``descendant`` contains ``ancestor`` in its history."""

    @abstractmethod
    def merge_tree(self, target_hash: str, head_hash: str) -> str:
        """Return the tree of a three-way merge of ``head_hash`` into ``target_hash``.

        No ref is left behind. Raises ConflictError when the merge does not
        apply cleanly.
        """

    @abstractmethod
    def find_landed(self, target_hash: str, head_hash: str, message: str) -> str | None:
        """Return a commit that already carries the change onto the target, or None.

        Only commits between ``target_hash`` and its merge-base with
        ``head_hash`` are considered. A commit carries the change when its
        tree equals the head's tree or its message equals ``message``.
        """

    @abstractmethod
    def commit(self, tree_hash: str, parent: str, message: str, author_name: str, author_email: str) -> str:
        """Create a commit object and return its hash. No ref is updated."""

    @abstractmethod
    def push(self, source_hash: str, target_ref: str, expected_target_hash: str) -> str:
        """Move ``target_ref`` to ``source_hash`` if it still points at ``expected_target_hash``.

        Returns the new hash of the ref. Raises ConflictError when the ref has
        moved or the update would not be a fast-forward.
        """


class Census(ABC):
    """Maps actor identities to project roles."""

    @abstractmethod
    def roles_of(self, actor: str, project: str | None = None) -> frozenset[Role]:
        """Return the actor's roles. Unknown actors have no roles."""

    def close(self) -> None:
        """Release any resources held by the census.

        Optional. The default is a no-op so callers can always call close().
        """
