from __future__ import annotations

from github import Github

from prflow_core.models import Proposal


def connect(repo_name: str, token: str):
    """Return the (client, repository) pair; the client identifies the bot account."""
    gh = Github(token)
    return gh, gh.get_repo(repo_name)


def get_pull(repo, pr_number: int):
    return repo.get_pull(pr_number)


def get_pull_requests(repo, state: str = "open"):
    return repo.get_pulls(state=state)


def to_proposal(pr, project: str | None = None) -> Proposal:
    """Convert a PyGithub PullRequest into a Proposal."""
    user = pr.user
    login = user.login
    return Proposal(
        id=str(pr.number),
        title=pr.title or "",
        body=pr.body or "",
        author=login,
        source_ref=pr.head.ref,
        target_ref=pr.base.ref,
        head_hash=pr.head.sha,
        is_open=pr.state == "open",
        author_name=user.name or login,
        # GitHub hides most addresses; the noreply address still attributes the commit.
        author_email=user.email or f"{login}@users.noreply.github.com",
        project=project,
    )
