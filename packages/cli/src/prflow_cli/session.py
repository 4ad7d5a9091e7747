"""Wiring of the GitHub collaborators shared by every command."""

from __future__ import annotations

from dataclasses import dataclass

import click
from github import GithubException

from prflow_core.capabilities import Census, ForgeRepository, VersionControl
from prflow_core.gh.forge import GitHubForge
from prflow_core.gh.git_data import GitHubVersionControl
from prflow_core.gh.pull_request import connect


@dataclass
class Session:
    config: dict
    forge: ForgeRepository
    vcs: VersionControl
    census: Census


def open_session(ctx: click.Context, repo_name: str) -> Session:
    config = ctx.obj["config"]
    token = config.get("github_token")
    if not token:
        raise click.UsageError(
            "No GitHub token found. Set PRFLOW_TOKEN or GITHUB_TOKEN, or run `gh auth login` first.\n"
            "Create a token at https://github.com/settings/tokens"
        )

    try:
        gh, repo = connect(repo_name, token)
    except GithubException as e:
        raise click.UsageError(f"Could not open repository {repo_name}: {e}")
    census = ctx.obj["census_factory"](config, repo)
    ctx.call_on_close(census.close)
    return Session(
        config=config,
        forge=GitHubForge(gh, repo, project=config.get("project")),
        vcs=GitHubVersionControl(repo),
        census=census,
    )
