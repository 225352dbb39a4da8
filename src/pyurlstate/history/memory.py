"""In-process session history.

Python hosts have no browser history object, so the default provider keeps
one in memory: an ordered list of entries with a cursor, shaped like a
browser session history.  ``push``/``replace`` are the application's own
writes; ``go``/``back``/``forward``/``navigate`` model navigation the
application did not initiate and are the only calls that notify subscribers
(unless ``notify_on_write`` is set, as it is for :func:`default_history`).
"""

from __future__ import annotations

import itertools
import logging
from collections.abc import Callable

from pyurlstate.history.adapter import Unsubscribe
from pyurlstate.history.location import Location

_logger = logging.getLogger(__name__)

MAX_HISTORY_ENTRIES = 1000


class MemoryHistory:
    """Entry stack with a cursor implementing :class:`LocationProvider`.

    Usage::

        history = MemoryHistory("/map?zoom=12")
        history.push(history.current_location().with_query("zoom=13"))
        history.back()  # notifies subscribers
    """

    def __init__(
        self,
        initial: Location | str | None = None,
        *,
        max_entries: int = MAX_HISTORY_ENTRIES,
        notify_on_write: bool = False,
    ) -> None:
        if isinstance(initial, str):
            initial = Location.from_url(initial)
        self._entries: list[Location] = [initial or Location()]
        self._index = 0
        self._max_entries = max(1, max_entries)
        self._notify_on_write = notify_on_write
        self._listeners: dict[int, Callable[[], None]] = {}
        self._tokens = itertools.count()

    # ------------------------------------------------------------------
    # LocationProvider
    # ------------------------------------------------------------------

    def current_location(self) -> Location:
        return self._entries[self._index]

    def subscribe(self, on_change: Callable[[], None]) -> Unsubscribe:
        token = next(self._tokens)
        self._listeners[token] = on_change

        def _unsubscribe() -> None:
            self._listeners.pop(token, None)

        return _unsubscribe

    def push(self, location: Location) -> None:
        self._append(location)
        _logger.debug("History push index=%d href=%s", self._index, location.href)
        if self._notify_on_write:
            self._notify()

    def replace(self, location: Location) -> None:
        self._entries[self._index] = location
        _logger.debug("History replace index=%d href=%s", self._index, location.href)
        if self._notify_on_write:
            self._notify()

    # ------------------------------------------------------------------
    # External navigation
    # ------------------------------------------------------------------

    def go(self, delta: int) -> bool:
        """Move the cursor by *delta* entries, clamped to the stack.

        Returns ``True`` and notifies subscribers if the cursor moved.
        """
        target = min(max(self._index + delta, 0), len(self._entries) - 1)
        if target == self._index:
            return False
        self._index = target
        _logger.debug("History go delta=%d index=%d", delta, self._index)
        self._notify()
        return True

    def back(self) -> bool:
        return self.go(-1)

    def forward(self) -> bool:
        return self.go(1)

    def navigate(self, location: Location | str) -> None:
        """Append an entry as if the user entered a new address."""
        if isinstance(location, str):
            location = Location.from_url(location)
        self._append(location)
        _logger.debug("History navigate index=%d href=%s", self._index, location.href)
        self._notify()

    @property
    def length(self) -> int:
        return len(self._entries)

    @property
    def index(self) -> int:
        return self._index

    @property
    def entries(self) -> tuple[Location, ...]:
        return tuple(self._entries)

    @property
    def can_go_back(self) -> bool:
        return self._index > 0

    @property
    def can_go_forward(self) -> bool:
        return self._index < len(self._entries) - 1

    def _append(self, location: Location) -> None:
        # A new entry discards everything ahead of the cursor.
        del self._entries[self._index + 1 :]
        self._entries.append(location)
        overflow = len(self._entries) - self._max_entries
        if overflow > 0:
            del self._entries[:overflow]
        self._index = len(self._entries) - 1

    def _notify(self) -> None:
        # Snapshot so listeners may unsubscribe while being notified.
        for listener in list(self._listeners.values()):
            try:
                listener()
            except Exception:
                _logger.debug("History listener failed", exc_info=True)


_default_history: MemoryHistory | None = None


def default_history() -> MemoryHistory:
    """Return the process-wide history used when no provider is configured.

    Every controller falling back to it shares one query string, so it
    notifies on writes: each controller absorbs the others' fields before
    its next write instead of overwriting them.
    """
    global _default_history
    if _default_history is None:
        _default_history = MemoryHistory(notify_on_write=True)
    return _default_history


def reset_default_history() -> None:
    """Discard the process-wide history; the next lookup starts fresh."""
    global _default_history
    _default_history = None
