"""Thin bindings over :class:`UrlStateController`.

View layers differ in how they hold on to state (hooks, wrapper objects,
render callbacks) but all of them need the same thing: a controller created
from some initial state and released when the view goes away.  These helpers
cover the two common shapes without re-implementing the controller.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import TypeVar

from pyurlstate.config import UrlStateConfig
from pyurlstate.state.controller import State, UrlStateController

P = TypeVar("P")


@contextmanager
def url_state(initial_state: State, config: UrlStateConfig | None = None) -> Iterator[UrlStateController]:
    """Yield an active controller and dispose it on exit."""
    controller = UrlStateController(initial_state, config)
    try:
        yield controller
    finally:
        controller.dispose()


def bind_url_state(
    get_initial_state: Callable[[P], State],
    config: UrlStateConfig | None = None,
) -> Callable[[P], UrlStateController]:
    """Return a factory creating controllers from ambient props.

    *get_initial_state* must be a pure function of the props::

        connect = bind_url_state(lambda props: {"name": props.default_name})
        controller = connect(props)
    """

    def _connect(props: P) -> UrlStateController:
        return UrlStateController(get_initial_state(props), config)

    return _connect
