"""CI check evaluation."""

from __future__ import annotations

from typing import Iterable

from prflow_core.models import Check, CheckStatus


def latest_checks(checks: Iterable[Check]) -> dict[str, Check]:
    """Keep one report per check name.

    Two workers may report the same check name for the same commit. The report
    with the newest timestamp (completion time, or start time while still in
    progress) wins; on equal timestamps the one reported later wins.
    """
    ordered = sorted(enumerate(checks), key=lambda pair: (pair[1].completed_at or pair[1].started_at, pair[0]))
    latest: dict[str, Check] = {}
    for _, check in ordered:
        latest[check.name] = check
    return latest


def check_blockers(checks: dict[str, Check], head_hash: str, required: list[str] | None = None) -> list[str]:
    """Return the reasons the checks for ``head_hash`` do not yet allow integration.

    With no required check names configured, every reported check must pass.
    """
    current = {name: c for name, c in checks.items() if c.hash == head_hash}
    names = list(required) if required else sorted(current)

    blockers = []
    for name in names:
        check = current.get(name)
        if check is None:
            blockers.append(f"Required check `{name}` has not reported yet.")
        elif not check.completed:
            blockers.append(f"Check `{name}` is still in progress.")
        elif check.status != CheckStatus.SUCCESS:
            reason = f"Check `{name}` failed."
            if check.annotations:
                first = check.annotations[0]
                reason += f" `{first.path}:{first.start_line}`: {first.message}"
            blockers.append(reason)
    return blockers
