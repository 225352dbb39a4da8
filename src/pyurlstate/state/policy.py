"""Push/replace policy.

A policy only decides *how* a transition is recorded in history; it never
changes *what* is written.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from enum import StrEnum
from typing import Any

from pyurlstate.exceptions import UrlStatePolicyError

Policy = Callable[[Mapping[str, Any], Mapping[str, Any]], bool]
"""``(next_state, current_state) -> bool``; ``True`` appends a history entry."""


class HistoryAction(StrEnum):
    PUSH = "push"
    REPLACE = "replace"


def always_replace(next_state: Mapping[str, Any], current_state: Mapping[str, Any]) -> bool:
    """Default policy: overwrite the current history entry."""
    return False


def always_push(next_state: Mapping[str, Any], current_state: Mapping[str, Any]) -> bool:
    return True


def push_when_changed(*fields: str) -> Policy:
    """Build a policy that pushes only when one of *fields* changes.

    With no fields, any difference between the two states pushes.  Useful
    for making "navigational" fields (a selected tab, a search term) undoable
    with the back button while high-frequency fields (map centre, scroll
    offsets) keep overwriting the current entry.
    """

    def _policy(next_state: Mapping[str, Any], current_state: Mapping[str, Any]) -> bool:
        keys = fields or tuple(set(next_state) | set(current_state))
        return any(next_state.get(key) != current_state.get(key) for key in keys)

    return _policy


def resolve_history_action(
    policy: Policy,
    next_state: Mapping[str, Any],
    current_state: Mapping[str, Any],
    override: HistoryAction | str | None = None,
) -> HistoryAction:
    """Decide the mutation for a transition.

    An explicit *override* wins over the policy.  Any exception raised by the
    policy is wrapped in :class:`UrlStatePolicyError`.
    """
    if override is not None:
        try:
            return HistoryAction(override)
        except ValueError as exc:
            raise UrlStatePolicyError(f"Unknown history action: {override!r}") from exc

    try:
        should_push = policy(next_state, current_state)
    except Exception as exc:
        raise UrlStatePolicyError(f"Push/replace policy failed: {exc}") from exc
    return HistoryAction.PUSH if should_push else HistoryAction.REPLACE
