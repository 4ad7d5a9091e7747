from __future__ import annotations

import re
from dataclasses import dataclass

ISSUE_LINE_RE = re.compile(r"^([A-Z]+-[0-9]+|[0-9]+): (\S.*)$")
DEFAULT_ISSUE_PATTERN = r"[A-Z][A-Z0-9]+-[0-9]+"


@dataclass(frozen=True)
class Issue:
    id: str
    description: str

    @classmethod
    def from_string(cls, s: str) -> Issue | None:
        """Parse an ``ID: description`` line, e.g. ``JDK-1234: Fix the frobnicator``."""
        match = ISSUE_LINE_RE.match(s)
        if match:
            return cls(match.group(1), match.group(2))
        return None

    def __str__(self) -> str:
        return f"{self.id}: {self.description}"


def find_issue_ids(text: str, pattern: str = DEFAULT_ISSUE_PATTERN) -> list[str]:
    """Return issue ids referenced in ``text`` in order of first reference."""
    seen: dict[str, None] = {}
    for match in re.finditer(rf"(?<![\w-])({pattern})(?![\w-])", text):
        seen.setdefault(match.group(1))
    return list(seen)
