"""Workflow data models.

Everything here is a value object. The forge owns the real data; these records
are rebuilt from its event history on every reconciliation, so none of them is
ever mutated or persisted by prflow itself.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class Role(str, Enum):
    AUTHOR = "author"
    COMMITTER = "committer"
    REVIEWER = "reviewer"


class Verdict(str, Enum):
    APPROVED = "approved"
    DISAPPROVED = "disapproved"
    NONE = "none"


class CheckStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    SUCCESS = "success"
    FAILURE = "failure"


@dataclass(frozen=True)
class Proposal:
    """A pull request as seen at the start of one reconciliation."""

    id: str
    title: str
    body: str
    author: str
    source_ref: str
    target_ref: str
    head_hash: str
    is_open: bool = True
    author_name: str = ""
    author_email: str = ""
    project: str | None = None


@dataclass(frozen=True)
class Comment:
    id: str
    author: str
    body: str
    created_at: datetime
    updated_at: datetime


@dataclass(frozen=True)
class Review:
    reviewer: str
    verdict: Verdict
    hash: str
    submitted_at: datetime


@dataclass(frozen=True)
class Contributor:
    name: str
    email: str

    def __str__(self) -> str:
        return f"{self.name} <{self.email}>"


@dataclass(frozen=True)
class Annotation:
    path: str
    start_line: int
    end_line: int
    level: str  # "notice" | "warning" | "failure"
    message: str
    title: str | None = None


@dataclass(frozen=True)
class Check:
    name: str
    hash: str
    status: CheckStatus
    started_at: datetime
    completed_at: datetime | None = None
    metadata: str | None = None  # external_id on GitHub
    annotations: tuple[Annotation, ...] = ()
    id: str | None = None

    @property
    def completed(self) -> bool:
        return self.status != CheckStatus.IN_PROGRESS


@dataclass(frozen=True)
class CommandError:
    """A user-facing command failure attached to the comment that caused it.

    Stored as plain data rather than as the exception instance so that two
    replays of the same history compare equal.
    """

    comment_id: str
    kind: str  # "syntax" | "authorization" | "state"
    message: str


@dataclass(frozen=True)
class CommandOutcome:
    """The reply one command comment earns in the current replay."""

    comment_id: str
    comment_body: str
    author: str
    command: str
    reply: str
    error: CommandError | None = None


@dataclass(frozen=True)
class WorkflowState:
    """Snapshot of a proposal's workflow, derived by replaying its history.

    ``blockers`` lists the review and check conditions that are not yet met;
    ``ready_commit_message`` is only set once there are none.
    """

    reviewers: dict[str, Review] = field(default_factory=dict)
    contributors: tuple[Contributor, ...] = ()
    outcomes: tuple[CommandOutcome, ...] = ()
    command_errors: tuple[CommandError, ...] = ()
    integration_requested: bool = False
    integrators: frozenset[str] = frozenset()
    sponsor_requested: bool = False
    sponsors: frozenset[str] = frozenset()
    sponsor_required: bool = False
    required_approvals: int = 1
    blockers: tuple[str, ...] = ()
    commit_message: str = ""
    ready_commit_message: str | None = None


@dataclass(frozen=True)
class IntegrationRecord:
    head_hash: str
    commit_hash: str


@dataclass
class ProposalHistory:
    """Everything fetched from the forge for one reconciliation."""

    proposal: Proposal
    comments: list[Comment]
    reviews: list[Review]
    checks: dict[str, Check]
    labels: list[str]
    bot_user: str
