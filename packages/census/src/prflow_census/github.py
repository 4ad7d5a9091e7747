"""GitHubCensus — roles derived from repository collaborator permissions.

The zero-configuration default: whoever can push to the repository is a
Committer, maintainers and admins are Reviewers as well. Nothing has to be kept
in sync by hand, at the cost of tying project roles to repository access.
"""

from __future__ import annotations

import logging

from github import GithubException

from prflow_core.capabilities import Census
from prflow_core.errors import TransientError
from prflow_core.models import Role

logger = logging.getLogger(__name__)

_ALL_ROLES = frozenset({Role.REVIEWER, Role.COMMITTER, Role.AUTHOR})

_PERMISSION_ROLES = {
    "admin": _ALL_ROLES,
    "maintain": _ALL_ROLES,
    "write": frozenset({Role.COMMITTER, Role.AUTHOR}),
    "triage": frozenset({Role.AUTHOR}),
}


class GitHubCensus(Census):
    def __init__(self, repo):
        self._repo = repo

    def roles_of(self, actor: str, project: str | None = None) -> frozenset[Role]:
        try:
            permission = self._repo.get_collaborator_permission(actor)
        except GithubException as e:
            # 404: not a collaborator, or no such user.
            if e.status == 404:
                return frozenset()
            raise TransientError(f"Could not look up permissions of {actor}: {e}") from e
        except OSError as e:
            raise TransientError(f"Could not look up permissions of {actor}: {e}") from e
        roles = _PERMISSION_ROLES.get(permission, frozenset())
        logger.debug("%s has permission %r -> %s", actor, permission, sorted(r.value for r in roles))
        return roles
