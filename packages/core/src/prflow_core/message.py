"""Integration commit message assembly."""

from __future__ import annotations

import re
from typing import Iterable

from prflow_core.issues import DEFAULT_ISSUE_PATTERN, Issue, find_issue_ids
from prflow_core.models import Contributor, Proposal

_HTML_COMMENT_RE = re.compile(r"<!--.*?-->", re.DOTALL)
_BLANK_LINES_RE = re.compile(r"\n{3,}")


def clean_body(body: str | None) -> str:
    """Strip HTML comments (PR templates, bot markers) and surrounding blank lines."""
    return _HTML_COMMENT_RE.sub("", body or "").strip()


def split_issues(body: str) -> tuple[list[Issue], str]:
    """Separate ``ID: description`` lines from the rest of a description."""
    issues = []
    kept = []
    for line in body.splitlines():
        issue = Issue.from_string(line.strip())
        if issue is not None:
            issues.append(issue)
        else:
            kept.append(line)
    return issues, _BLANK_LINES_RE.sub("\n\n", "\n".join(kept)).strip()


def build_commit_message(
    proposal: Proposal,
    contributors: Iterable[Contributor],
    issue_pattern: str = DEFAULT_ISSUE_PATTERN,
) -> str:
    """Build the message of the commit that integrates ``proposal``.

    Layout, with empty sections omitted::

        <title>
        <issue line>               (``ID: description`` lines moved up from the body)

        <body>

        Refs: <issue id>           (other referenced issues, in order of first reference)

        Co-authored-by: Name <email>   (one per contributor, in insertion order)
    """
    title = proposal.title.strip()
    issues, body = split_issues(clean_body(proposal.body))

    header = [title]
    listed = set()
    title_issue = Issue.from_string(title)
    if title_issue is not None:
        listed.add(title_issue.id)
    for issue in issues:
        if issue.id not in listed:
            header.append(str(issue))
            listed.add(issue.id)

    sections = ["\n".join(header)]
    if body:
        sections.append(body)

    issue_ids = [i for i in find_issue_ids(f"{title}\n{body}", issue_pattern) if i not in listed]
    if issue_ids:
        sections.append("\n".join(f"Refs: {issue_id}" for issue_id in issue_ids))

    trailers = [f"Co-authored-by: {c}" for c in contributors]
    if trailers:
        sections.append("\n".join(trailers))

    return "\n\n".join(sections)
