"""Idempotency markers.

prflow keeps no database. Each side effect leaves a marker on the proposal
itself, an HTML comment that is invisible in the rendered conversation:

    <!-- prflow-reply: 1234:5f2c0e9a1b7d -->
    <!-- prflow-integrated: <head sha> <commit sha> -->

Before acting, the engine looks for its own marker and skips the action if it
is there. Only comments written by the bot account are trusted; a user pasting
a marker into their own comment has no effect.
"""

from __future__ import annotations

import hashlib
import re
from typing import Iterable

from prflow_core.models import Comment, IntegrationRecord

_MARKER_RE = re.compile(r"<!-- prflow-([a-z]+): ([^<>]+?) -->")

REPLY = "reply"
READY = "ready"
CONFLICT = "conflict"
INTEGRATED = "integrated"


def digest(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()[:12]


def marker(kind: str, key: str) -> str:
    return f"<!-- prflow-{kind}: {key} -->"


def reply_key(comment: Comment) -> str:
    """Key a reply by comment id and content, so an edited command is answered again."""
    return f"{comment.id}:{digest(comment.body or '')}"


def find_markers(comments: Iterable[Comment], bot_user: str) -> list[tuple[str, str]]:
    """Return every (kind, key) marker found in the bot's comments, oldest first."""
    found = []
    for comment in comments:
        if comment.author != bot_user:
            continue
        for match in _MARKER_RE.finditer(comment.body or ""):
            found.append((match.group(1), match.group(2).strip()))
    return found


class Guard:
    """The set of side effects already visible on a proposal."""

    def __init__(self, comments: Iterable[Comment], bot_user: str, labels: Iterable[str] = ()):
        comments = list(comments)
        self._markers = find_markers(comments, bot_user)
        self._seen = set(self._markers)
        # kind -> id of the newest bot comment carrying a marker of that kind
        self._comment_ids = {kind: c.id for c in comments for kind, _ in find_markers([c], bot_user)}
        self.labels = set(labels)

    def seen(self, kind: str, key: str) -> bool:
        return (kind, key) in self._seen

    def comment_id(self, kind: str) -> str | None:
        """Return the id of the newest comment carrying a ``kind`` marker."""
        return self._comment_ids.get(kind)

    def remember(self, kind: str, key: str) -> None:
        """Record an action taken in the current cycle."""
        self._markers.append((kind, key))
        self._seen.add((kind, key))

    def integration_record(self, head_hash: str) -> IntegrationRecord | None:
        for kind, key in self._markers:
            if kind != INTEGRATED:
                continue
            head, _, commit = key.partition(" ")
            if head == head_hash and commit:
                return IntegrationRecord(head_hash=head, commit_hash=commit)
        return None
