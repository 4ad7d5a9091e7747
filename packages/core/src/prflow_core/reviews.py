"""Review aggregation and the review quorum rule."""

from __future__ import annotations

from typing import Callable, Iterable

from prflow_core.models import Proposal, Review, Role, Verdict


def aggregate_reviews(reviews: Iterable[Review]) -> dict[str, Review]:
    """Collapse a review stream into the current review of each reviewer.

    Only the latest review per reviewer counts: ordering is by submission time,
    with ties broken by position in the stream. Reviews against an older head
    are kept; whether they still count is up to the quorum rule.
    """
    ordered = sorted(enumerate(reviews), key=lambda pair: (pair[1].submitted_at, pair[0]))
    latest: dict[str, Review] = {}
    for _, review in ordered:
        latest[review.reviewer] = review
    return dict(sorted(latest.items()))


def review_blockers(
    reviewers: dict[str, Review],
    proposal: Proposal,
    roles_of: Callable[[str], frozenset],
    required: int,
    count_stale: bool = True,
) -> list[str]:
    """Return the reasons the current reviews do not yet allow integration."""
    approvals = 0
    disapprovers = []
    for reviewer, review in reviewers.items():
        if reviewer == proposal.author:
            continue
        roles = roles_of(reviewer)
        if review.verdict == Verdict.DISAPPROVED and roles & {Role.REVIEWER, Role.COMMITTER}:
            disapprovers.append(reviewer)
        elif review.verdict == Verdict.APPROVED and Role.COMMITTER in roles:
            if count_stale or review.hash == proposal.head_hash:
                approvals += 1

    blockers = []
    if approvals < required:
        blockers.append(f"Change must be approved by at least {required} Committer(s) ({approvals} so far).")
    for reviewer in disapprovers:
        blockers.append(f"Change has been disapproved by @{reviewer}.")
    return blockers
