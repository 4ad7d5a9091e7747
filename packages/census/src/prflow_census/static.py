"""StaticCensus — roles listed in a YAML file kept next to the bot's config.

Why a file-based census:
- Projects whose roles are not mirrored by repository permissions (e.g. a
  Committer who has no write access because only the bot pushes) still need a
  source of truth for who may approve and sponsor changes.
- The file lives in version control, so every role change is reviewed.

Format, either flat::

    reviewers: [alice]
    committers: [bob]
    authors: [carol]

or per project::

    projects:
      frobnicator:
        reviewers: [alice]

Roles are hierarchical: a Reviewer is also a Committer, a Committer is also
an Author.
"""

from __future__ import annotations

import logging
from pathlib import Path

import yaml

from prflow_core.capabilities import Census
from prflow_core.errors import FatalError
from prflow_core.models import Role

logger = logging.getLogger(__name__)

_IMPLIED = {
    "reviewers": frozenset({Role.REVIEWER, Role.COMMITTER, Role.AUTHOR}),
    "committers": frozenset({Role.COMMITTER, Role.AUTHOR}),
    "authors": frozenset({Role.AUTHOR}),
}


def _parse_members(section: dict) -> dict[str, frozenset]:
    members: dict[str, frozenset] = {}
    for key, roles in _IMPLIED.items():
        for name in section.get(key) or []:
            members[str(name)] = members.get(str(name), frozenset()) | roles
    return members


class StaticCensus(Census):
    def __init__(self, path: str = "census.yml"):
        p = Path(path)
        if not p.exists():
            raise FileNotFoundError(f"Census file not found: {path}")
        with open(p) as f:
            data = yaml.safe_load(f) or {}

        self._projects: dict[str, dict[str, frozenset]] = {
            name: _parse_members(section or {}) for name, section in (data.get("projects") or {}).items()
        }
        self._default = _parse_members(data)
        logger.debug("Loaded census from %s (%d project(s))", path, len(self._projects))

    def roles_of(self, actor: str, project: str | None = None) -> frozenset[Role]:
        if project is None or not self._projects:
            return self._default.get(actor, frozenset())
        if project not in self._projects:
            raise FatalError(f"Project {project!r} is not in the census.")
        return self._projects[project].get(actor, frozenset())
