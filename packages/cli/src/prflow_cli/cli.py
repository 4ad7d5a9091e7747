"""CLI entry point for prflow.

Commands:
  run        — poll a repository and reconcile every open pull request
  reconcile  — reconcile a single pull request once
  status     — show the reconstructed workflow state of a pull request
"""

from __future__ import annotations

import importlib.metadata
import logging

import click
from rich.console import Console
from rich.logging import RichHandler

from prflow_cli.commands.reconcile import reconcile_cmd
from prflow_cli.commands.run import run_cmd
from prflow_cli.commands.status import status_cmd

console = Console()


def _build_census(config: dict, repo):
    """Instantiate the configured census from .prflow.yml settings.

    Census selection:
      census: static → StaticCensus (reads census_path, default census.yml)
      (default)      → GitHubCensus (collaborator permissions on the repository)

    This factory lives in cli.py so neither prflow_core nor prflow_census
    know about the CLI config format.
    """
    if config.get("census") == "static":
        from prflow_census.static import StaticCensus

        try:
            return StaticCensus(config.get("census_path", "census.yml"))
        except FileNotFoundError as e:
            raise click.UsageError(str(e))

    from prflow_census.github import GitHubCensus

    return GitHubCensus(repo)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=verbose)],
    )
    # PyGithub and urllib3 are chatty at DEBUG.
    logging.getLogger("github").setLevel(logging.INFO if verbose else logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)


@click.group()
@click.version_option(
    version=importlib.metadata.version("prflow"),
    prog_name="prflow",
)
@click.option(
    "--config",
    "config_path",
    default=".prflow.yml",
    show_default=True,
    help="Path to the configuration file.",
    envvar="PRFLOW_CONFIG",
)
@click.option("--verbose", "-v", is_flag=True, help="Log debug output.")
@click.pass_context
def main(ctx: click.Context, config_path: str, verbose: bool):
    """Pull request workflow bot: commands, reviews, checks and integration."""
    from prflow_core.config import load_config, validate_config
    from prflow_cli.auth import resolve_github_token

    ctx.ensure_object(dict)
    _configure_logging(verbose)

    config = load_config(config_path)
    try:
        validate_config(config)
    except ValueError as e:
        raise click.UsageError(f"Invalid configuration in {config_path}: {e}")

    # Resolved once, so every subcommand acts as the same account.
    config["github_token"] = resolve_github_token(config)

    ctx.obj["config"] = config
    ctx.obj["census_factory"] = _build_census


main.add_command(run_cmd)
main.add_command(reconcile_cmd)
main.add_command(status_cmd)
