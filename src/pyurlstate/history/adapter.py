"""Location provider contract."""

from __future__ import annotations

from collections.abc import Callable
from typing import Protocol, runtime_checkable

from pyurlstate.history.location import Location

Unsubscribe = Callable[[], None]
"""Deregisters one listener.  Calling it again is a no-op."""


@runtime_checkable
class LocationProvider(Protocol):
    """Structural interface the sync controller talks to.

    Implementations must notify subscribers for location transitions they did
    not originate themselves (back/forward, a typed address).  ``replace``
    must not create a history entry.  Whether ``push``/``replace`` also notify
    is up to the provider; the controller ignores notifications for the query
    it last wrote.
    """

    def current_location(self) -> Location:
        ...

    def subscribe(self, on_change: Callable[[], None]) -> Unsubscribe:
        ...

    def push(self, location: Location) -> None:
        ...

    def replace(self, location: Location) -> None:
        ...
