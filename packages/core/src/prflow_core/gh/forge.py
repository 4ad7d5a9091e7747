"""ForgeRepository backed by the GitHub REST API (PyGithub)."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from github import GithubException

from prflow_core.capabilities import ForgeRepository
from prflow_core.checks import latest_checks
from prflow_core.gh.errors import translate_errors
from prflow_core.gh.pull_request import get_pull, get_pull_requests, to_proposal
from prflow_core.models import Annotation, Check, CheckStatus, Comment, Proposal, Review, Verdict

logger = logging.getLogger(__name__)

_VERDICTS = {
    "APPROVED": Verdict.APPROVED,
    "CHANGES_REQUESTED": Verdict.DISAPPROVED,
}


def _utc(value: datetime | None) -> datetime | None:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _to_comment(c) -> Comment:
    return Comment(
        id=str(c.id),
        author=c.user.login,
        body=c.body or "",
        created_at=_utc(c.created_at),
        updated_at=_utc(c.updated_at or c.created_at),
    )


def _to_annotation(a) -> Annotation:
    return Annotation(
        path=a.path,
        start_line=a.start_line,
        end_line=a.end_line,
        level=a.annotation_level,
        message=a.message,
        title=a.title,
    )


def _to_check(run) -> Check:
    if run.status != "completed":
        status = CheckStatus.IN_PROGRESS
    elif run.conclusion == "success":
        status = CheckStatus.SUCCESS
    else:
        status = CheckStatus.FAILURE
    return Check(
        name=run.name,
        hash=run.head_sha,
        status=status,
        started_at=_utc(run.started_at) or datetime.min.replace(tzinfo=timezone.utc),
        completed_at=_utc(run.completed_at),
        metadata=run.external_id or None,
        # Annotations cost one request per run; only failures need explaining.
        annotations=tuple(_to_annotation(a) for a in run.get_annotations()) if status == CheckStatus.FAILURE else (),
        id=str(run.id),
    )


def _run_status(status: CheckStatus) -> dict:
    if status == CheckStatus.IN_PROGRESS:
        return {"status": "in_progress"}
    return {"status": "completed", "conclusion": status.value}


class GitHubForge(ForgeRepository):
    """One GitHub repository, seen through PyGithub's ``Repository`` object.

    Pull request objects are fetched again on every call instead of being
    cached, so each reconciliation works from what GitHub reports right now.
    """

    def __init__(self, gh, repo, project: str | None = None):
        self._repo = repo
        self._gh = gh
        self._project = project
        self._login: str | None = None

    @translate_errors
    def current_user(self) -> str:
        if self._login is None:
            self._login = self._gh.get_user().login
        return self._login

    @translate_errors
    def open_proposals(self) -> list[Proposal]:
        return [to_proposal(pr, self._project) for pr in get_pull_requests(self._repo)]

    @translate_errors
    def get_proposal(self, proposal_id: str) -> Proposal:
        return to_proposal(get_pull(self._repo, int(proposal_id)), self._project)

    @translate_errors
    def list_comments(self, proposal_id: str) -> list[Comment]:
        pr = get_pull(self._repo, int(proposal_id))
        return [_to_comment(c) for c in pr.get_issue_comments()]

    @translate_errors
    def list_reviews(self, proposal_id: str) -> list[Review]:
        pr = get_pull(self._repo, int(proposal_id))
        reviews = []
        for r in pr.get_reviews():
            # Pending reviews are drafts only their author can see.
            if r.submitted_at is None or r.state == "PENDING":
                continue
            reviews.append(
                Review(
                    reviewer=r.user.login,
                    verdict=_VERDICTS.get(r.state, Verdict.NONE),
                    hash=r.commit_id,
                    submitted_at=_utc(r.submitted_at),
                )
            )
        return reviews

    @translate_errors
    def list_checks(self, head_hash: str) -> dict[str, Check]:
        runs = self._repo.get_commit(head_hash).get_check_runs()
        return latest_checks(_to_check(run) for run in runs)

    @translate_errors
    def list_labels(self, proposal_id: str) -> list[str]:
        pr = get_pull(self._repo, int(proposal_id))
        return sorted(label.name for label in pr.get_labels())

    @translate_errors
    def post_comment(self, proposal_id: str, body: str) -> Comment:
        pr = get_pull(self._repo, int(proposal_id))
        c = pr.create_issue_comment(body)
        logger.debug("Posted comment %s on #%s", c.id, proposal_id)
        return _to_comment(c)

    @translate_errors
    def update_comment(self, proposal_id: str, comment_id: str, body: str) -> None:
        pr = get_pull(self._repo, int(proposal_id))
        pr.get_issue_comment(int(comment_id)).edit(body)
        logger.debug("Edited comment %s on #%s", comment_id, proposal_id)

    @translate_errors
    def create_check(
        self, head_hash: str, name: str, status: CheckStatus, title: str, summary: str, external_id: str
    ) -> Check:
        run = self._repo.create_check_run(
            name=name,
            head_sha=head_hash,
            external_id=external_id,
            output={"title": title, "summary": summary},
            **_run_status(status),
        )
        logger.debug("Created check run %s on %s", run.id, head_hash[:7])
        return _to_check(run)

    @translate_errors
    def update_check(self, check_id: str, status: CheckStatus, title: str, summary: str, external_id: str) -> None:
        run = self._repo.get_check_run(int(check_id))
        run.edit(external_id=external_id, output={"title": title, "summary": summary}, **_run_status(status))

    @translate_errors
    def add_label(self, proposal_id: str, name: str) -> None:
        get_pull(self._repo, int(proposal_id)).add_to_labels(name)

    @translate_errors
    def remove_label(self, proposal_id: str, name: str) -> None:
        try:
            get_pull(self._repo, int(proposal_id)).remove_from_labels(name)
        except GithubException as e:
            # GitHub answers 404 when the label is not set.
            if e.status != 404:
                raise

    @translate_errors
    def close_proposal(self, proposal_id: str) -> None:
        get_pull(self._repo, int(proposal_id)).edit(state="closed")
