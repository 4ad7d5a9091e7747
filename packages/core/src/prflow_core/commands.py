"""Inline command parsing.

A comment is a command when its first non-blank line starts with the command
prefix (``/`` by default). Only the verbs in ``COMMANDS`` are recognized; any
other leading word means the comment is ordinary discussion and is ignored.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from prflow_core.errors import CommandSyntaxError

_CONTRIBUTOR_RE = re.compile(r"^(add|remove)\s+(\S.*?)\s+<?([^\s<>]+@[^\s<>]+?)>?$")

MAX_REVIEWERS = 10

USAGE = {
    "contributor": "/contributor (add|remove) Full Name <email@example.com>",
    "reviewers": f"/reviewers <n> (1-{MAX_REVIEWERS})",
    "integrate": "/integrate",
    "sponsor": "/sponsor",
    "help": "/help",
}


@dataclass(frozen=True)
class Command:
    name: str
    args: tuple = ()


@dataclass(frozen=True)
class Malformed:
    name: str
    message: str


def _parse_contributor(rest: str) -> tuple:
    match = _CONTRIBUTOR_RE.match(rest)
    if not match:
        raise CommandSyntaxError("Syntax error in `contributor` command.", USAGE["contributor"])
    action, name, email = match.groups()
    return action, name.strip(), email


def _parse_reviewers(rest: str) -> tuple:
    try:
        count = int(rest)
    except ValueError:
        raise CommandSyntaxError("Syntax error in `reviewers` command.", USAGE["reviewers"])
    if not 1 <= count <= MAX_REVIEWERS:
        raise CommandSyntaxError(
            f"Syntax error in `reviewers` command: number must be between 1 and {MAX_REVIEWERS}.",
            USAGE["reviewers"],
        )
    return (count,)


def _no_arguments(name: str):
    def parse(rest: str) -> tuple:
        if rest:
            raise CommandSyntaxError(f"Syntax error in `{name}` command: it takes no arguments.", USAGE[name])
        return ()

    return parse


COMMANDS = {
    "contributor": _parse_contributor,
    "reviewers": _parse_reviewers,
    "integrate": _no_arguments("integrate"),
    "sponsor": _no_arguments("sponsor"),
    "help": _no_arguments("help"),
}


def _command_line(body: str) -> str | None:
    for line in body.splitlines():
        if line.strip():
            return line.strip()
    return None


def parse_command(body: str | None, prefix: str = "/") -> Command | Malformed | None:
    """Parse a comment body into a command.

    Returns None when the comment is not a command at all, a Malformed result
    when a known verb carries invalid arguments, and a Command otherwise.
    """
    line = _command_line(body or "")
    if line is None or not line.startswith(prefix):
        return None

    verb, _, rest = line[len(prefix) :].partition(" ")
    verb = verb.lower()
    parser = COMMANDS.get(verb)
    if parser is None:
        return None

    try:
        return Command(name=verb, args=parser(rest.strip()))
    except CommandSyntaxError as e:
        message = str(e)
        if e.usage:
            message += f" Usage: `{e.usage}`"
        return Malformed(name=verb, message=message)


def help_text() -> str:
    lines = ["Available commands:"]
    lines.extend(f"- `{usage}`" for usage in USAGE.values())
    return "\n".join(lines)
