"""Credentials for the bot account.

Replies, labels, check runs and pushes all carry the identity of the token's
owner, and the idempotency markers are only trusted in that account's
comments. A deployed bot should therefore run under a dedicated account, so
the sources are tried in this order:

  1. PRFLOW_TOKEN, the bot account's own token
  2. GITHUB_TOKEN, as injected into GitHub Actions workflows
  3. ``github_token`` in .prflow.yml
  4. ``gh auth token``, convenient for ``prflow status`` and dry runs
"""

from __future__ import annotations

import logging
import os
import subprocess

logger = logging.getLogger(__name__)

TOKEN_VARIABLES = ("PRFLOW_TOKEN", "GITHUB_TOKEN")


def _gh_cli_token() -> str | None:
    try:
        result = subprocess.run(["gh", "auth", "token"], capture_output=True, text=True, timeout=5)
    except (FileNotFoundError, subprocess.TimeoutExpired):
        return None
    if result.returncode != 0:
        return None
    return result.stdout.strip() or None


def resolve_github_token(config: dict | None = None) -> str | None:
    """Return the token the bot acts with, or None if no source has one."""
    for name in TOKEN_VARIABLES:
        token = os.environ.get(name)
        if token:
            logger.debug("Using the GitHub token from %s.", name)
            return token

    token = (config or {}).get("github_token")
    if token:
        logger.debug("Using the GitHub token from the configuration file.")
        return token

    token = _gh_cli_token()
    if token:
        # Comments and pushes will then appear as the developer, not as a bot.
        logger.info("Using the gh CLI session; prflow will act as your GitHub account.")
    return token
