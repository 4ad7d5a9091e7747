"""Translation of PyGithub failures into the engine's error taxonomy."""

from __future__ import annotations

import functools

from github import GithubException

from prflow_core.errors import FatalError, TransientError

# 403 is what GitHub answers when the secondary rate limit kicks in.
_RETRYABLE_STATUSES = {403, 429}


def is_retryable(e: GithubException) -> bool:
    return e.status is None or e.status >= 500 or e.status in _RETRYABLE_STATUSES


def describe(e: GithubException) -> str:
    data = e.data if isinstance(e.data, dict) else {}
    return f"GitHub API error {e.status}: {data.get('message', e)}"


def translate_errors(func):
    """Re-raise GitHub API and network errors as TransientError or FatalError.

    Must wrap code that fully materializes PaginatedLists: the HTTP requests
    behind a lazy list would otherwise escape the translation.
    """

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except GithubException as e:
            if is_retryable(e):
                raise TransientError(describe(e)) from e
            raise FatalError(describe(e)) from e
        except OSError as e:
            # requests' ConnectionError and Timeout are OSErrors.
            raise TransientError(f"Network error talking to GitHub: {e}") from e

    return wrapper
