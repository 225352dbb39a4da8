"""Snapshot change events.

Every snapshot replacement made by a controller is described by one of
these events and handed to the controller's observers.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from pyurlstate.state.policy import HistoryAction


class ChangeSource(StrEnum):
    SET_STATE = "set_state"
    LOCATION = "location"


class StateChange(BaseModel):
    """A committed snapshot replacement."""

    model_config = ConfigDict(frozen=True)

    source: ChangeSource
    previous: dict[str, Any] = Field(default_factory=dict, description="Snapshot before the change")
    current: dict[str, Any] = Field(default_factory=dict, description="Snapshot after the change")
    query: str = Field(default="", description="Query the new snapshot corresponds to")
    action: HistoryAction | None = Field(
        default=None,
        description="Mutation used for set_state changes; None for location-originated ones.",
    )

    @property
    def changed_keys(self) -> frozenset[str]:
        keys = set(self.previous) | set(self.current)
        return frozenset(key for key in keys if self.previous.get(key) != self.current.get(key))
