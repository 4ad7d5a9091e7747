"""Error taxonomy.

Command, authorization and state errors end up as replies on the proposal.
Conflicts end up as a rebase request. Transient errors are retried on the next
poll cycle without a reply. Fatal errors abandon the current proposal only.
"""

from __future__ import annotations


class PrflowError(Exception):
    """Base class for every error raised by the workflow engine."""


class CommandSyntaxError(PrflowError):
    """A recognized command was issued with invalid arguments."""

    def __init__(self, message: str, usage: str | None = None):
        super().__init__(message)
        self.usage = usage


class AuthorizationError(PrflowError):
    """The actor lacks the role a command requires."""


class StateError(PrflowError):
    """A command is well-formed and allowed but does not apply to the current state."""


class ConflictError(PrflowError):
    """The target branch moved; the change must be rebased before it can be pushed."""


class TransientError(PrflowError):
    """A network or API failure; the proposal is retried on the next cycle."""


class FatalError(PrflowError):
    """Forge or census data is inconsistent; the proposal is left untouched."""
