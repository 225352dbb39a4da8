from __future__ import annotations

from dataclasses import dataclass

from pyurlstate.binding import bind_url_state, url_state
from pyurlstate.config import UrlStateConfig
from pyurlstate.history.memory import MemoryHistory
from pyurlstate.state.controller import Lifecycle


@dataclass(frozen=True)
class _SearchProps:
    default_name: str


def test_url_state_disposes_on_exit() -> None:
    history = MemoryHistory()
    with url_state({"color": "red"}, UrlStateConfig(provider=history)) as ctl:
        ctl.set_state({"color": "green"})
        assert history.current_location().query == "color=green"

    assert ctl.lifecycle is Lifecycle.DISPOSED
    history.navigate("/?color=blue")
    assert ctl.state["color"] == "green"


def test_bind_url_state_uses_props_for_initial_state() -> None:
    history = MemoryHistory("/search")
    connect = bind_url_state(lambda props: {"name": props.default_name}, UrlStateConfig(provider=history))

    ctl = connect(_SearchProps(default_name="Skywalker"))

    assert dict(ctl.state) == {"name": "Skywalker"}
    assert history.current_location().query == "name=Skywalker"
    ctl.dispose()


def test_default_provider_is_process_history() -> None:
    from pyurlstate.history.memory import default_history, reset_default_history

    reset_default_history()
    try:
        with url_state({"color": "red"}) as ctl:
            assert ctl.provider is default_history()
            assert default_history().current_location().query == "color=red"
    finally:
        reset_default_history()
