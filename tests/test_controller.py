from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any

import pytest

from pyurlstate.codec import QueryStringCodec
from pyurlstate.config import UrlStateConfig
from pyurlstate.exceptions import (
    UrlStateCodecError,
    UrlStateDisposedError,
    UrlStateError,
    UrlStatePolicyError,
)
from pyurlstate.history.location import Location
from pyurlstate.history.memory import MemoryHistory, default_history, reset_default_history
from pyurlstate.state.controller import Lifecycle, UrlStateController, create_url_state
from pyurlstate.state.events import ChangeSource, StateChange
from pyurlstate.state.policy import HistoryAction, always_push


class _RecordingHistory(MemoryHistory):
    """MemoryHistory that records every write made through it."""

    def __init__(self, initial: str | None = None, **kwargs: Any) -> None:
        super().__init__(initial, **kwargs)
        self.calls: list[tuple[str, Location]] = []

    def push(self, location: Location) -> None:
        self.calls.append(("push", location))
        super().push(location)

    def replace(self, location: Location) -> None:
        self.calls.append(("replace", location))
        super().replace(location)


def _controller(
    initial: Mapping[str, Any],
    history: MemoryHistory,
    should_push: Callable[[Mapping[str, Any], Mapping[str, Any]], bool] | None = None,
) -> UrlStateController:
    return create_url_state(initial, provider=history, should_push=should_push)


# ------------------------------------------------------------------
# Construction
# ------------------------------------------------------------------


def test_initial_state_written_to_empty_query() -> None:
    history = _RecordingHistory("/colors")
    ctl = _controller({"color": "red"}, history)

    assert dict(ctl.get_state()) == {"color": "red"}
    assert history.current_location().query == "color=red"
    assert ctl.lifecycle is Lifecycle.ACTIVE


def test_query_wins_over_initial_state() -> None:
    history = _RecordingHistory("/colors?color=blue")
    ctl = _controller({"color": "red"}, history)

    assert dict(ctl.get_state()) == {"color": "blue"}
    assert history.current_location().query == "color=blue"


def test_missing_fields_are_added_to_query() -> None:
    history = _RecordingHistory("/?color=Blue")
    ctl = _controller({"animal": "Ant", "color": "Red"}, history)

    assert dict(ctl.state) == {"animal": "Ant", "color": "Blue"}
    assert history.current_location().query == "animal=Ant&color=Blue"


def test_construction_replaces_once_and_never_pushes() -> None:
    history = _RecordingHistory("/p?x=1#top")
    _controller({"y": "2"}, history)

    assert [name for name, _ in history.calls] == ["replace"]
    assert history.length == 1
    location = history.current_location()
    assert location.path == "/p"
    assert location.fragment == "top"


def test_unknown_query_fields_are_kept() -> None:
    history = _RecordingHistory("/?color=blue&ref=newsletter")
    ctl = _controller({"color": "red"}, history)

    assert dict(ctl.state) == {"color": "blue", "ref": "newsletter"}


# ------------------------------------------------------------------
# set_state
# ------------------------------------------------------------------


def test_set_state_is_visible_immediately() -> None:
    history = _RecordingHistory()
    ctl = _controller({"color": "red", "size": "m"}, history)

    returned = ctl.set_state({"color": "green"})

    assert dict(returned) == {"color": "green", "size": "m"}
    assert dict(ctl.get_state()) == {"color": "green", "size": "m"}
    assert history.current_location().query == "color=green&size=m"


def test_default_policy_replaces() -> None:
    history = _RecordingHistory("/?color=red")
    ctl = _controller({"color": "red"}, history)

    ctl.set_state({"color": "green"})
    ctl.set_state({"color": "green"})

    assert history.length == 1
    assert history.current_location().query == "color=green"
    assert [name for name, _ in history.calls] == ["replace", "replace", "replace"]


def test_push_policy_adds_entries() -> None:
    history = _RecordingHistory()
    ctl = _controller({"color": "red"}, history, should_push=always_push)

    ctl.set_state({"color": "green"})
    ctl.set_state({"color": "blue"})

    assert history.length == 3
    assert history.current_location().query == "color=blue"


def test_policy_receives_next_and_current() -> None:
    seen: list[tuple[dict[str, Any], dict[str, Any]]] = []

    def policy(next_state: Mapping[str, Any], current: Mapping[str, Any]) -> bool:
        seen.append((dict(next_state), dict(current)))
        return next_state["page"] != current["page"]

    history = _RecordingHistory()
    ctl = _controller({"page": "1", "q": ""}, history, should_push=policy)

    ctl.set_state({"q": "otter"})
    ctl.set_state({"page": "2"})

    assert seen[0] == ({"page": "1", "q": "otter"}, {"page": "1", "q": ""})
    assert [name for name, _ in history.calls] == ["replace", "replace", "push"]


def test_explicit_history_action_overrides_policy() -> None:
    history = _RecordingHistory()
    ctl = _controller({"color": "red"}, history)

    ctl.set_state({"color": "green"}, history_action="push")
    ctl.set_state({"color": "blue"}, history_action=HistoryAction.REPLACE)

    assert history.length == 2
    assert history.entries[0].query == "color=red"
    assert history.current_location().query == "color=blue"


def test_functional_update_receives_previous_snapshot() -> None:
    history = _RecordingHistory("/?zoom=12")
    ctl = _controller({"zoom": "10", "lat": "51.4"}, history)

    ctl.set_state(lambda prev: {"zoom": str(int(prev["zoom"]) + 1)})

    assert dict(ctl.state) == {"zoom": "13", "lat": "51.4"}


def test_functional_update_must_return_mapping() -> None:
    ctl = _controller({"a": "1"}, _RecordingHistory())

    with pytest.raises(TypeError):
        ctl.set_state(lambda prev: None)  # type: ignore[arg-type, return-value]


def test_omitted_fields_are_kept_and_none_clears_from_query() -> None:
    history = _RecordingHistory()
    ctl = _controller({"color": "red", "animal": "ant"}, history)

    ctl.set_state({"color": "blue"})
    assert history.current_location().query == "color=blue&animal=ant"

    ctl.set_state({"animal": None})
    assert history.current_location().query == "color=blue"
    assert ctl.state["animal"] is None


def test_snapshot_is_read_only() -> None:
    ctl = _controller({"a": "1"}, _RecordingHistory())

    with pytest.raises(TypeError):
        ctl.state["a"] = "2"  # type: ignore[index]


def test_path_and_fragment_preserved_on_write() -> None:
    history = _RecordingHistory("/search?q=a#results")
    ctl = _controller({"q": ""}, history, should_push=always_push)

    ctl.set_state({"q": "b"})

    assert history.current_location() == Location(path="/search", query="q=b", fragment="results")


# ------------------------------------------------------------------
# Errors
# ------------------------------------------------------------------


def test_policy_failure_propagates_without_mutation() -> None:
    def broken(next_state: Mapping[str, Any], current: Mapping[str, Any]) -> bool:
        raise RuntimeError("boom")

    history = _RecordingHistory()
    ctl = _controller({"color": "red"}, history, should_push=broken)
    calls_before = list(history.calls)

    with pytest.raises(UrlStatePolicyError) as excinfo:
        ctl.set_state({"color": "green"})

    assert isinstance(excinfo.value.__cause__, RuntimeError)
    assert history.calls == calls_before
    assert dict(ctl.state) == {"color": "red"}
    assert history.current_location().query == "color=red"


def test_unknown_history_action_is_a_policy_error() -> None:
    ctl = _controller({"color": "red"}, _RecordingHistory())

    with pytest.raises(UrlStatePolicyError):
        ctl.set_state({"color": "green"}, history_action="teleport")


def test_set_state_after_dispose_raises() -> None:
    history = _RecordingHistory()
    ctl = _controller({"color": "red"}, history)
    ctl.dispose()

    with pytest.raises(UrlStateDisposedError):
        ctl.set_state({"color": "green"})
    assert history.current_location().query == "color=red"
    assert dict(ctl.get_state()) == {"color": "red"}


def test_reentrant_set_state_is_rejected() -> None:
    ctl = _controller({"n": "0"}, _RecordingHistory())

    def updater(prev: Mapping[str, Any]) -> Mapping[str, Any]:
        ctl.set_state({"n": "1"})
        return {"n": "2"}

    with pytest.raises(UrlStateError):
        ctl.set_state(updater)
    assert dict(ctl.state) == {"n": "0"}


def test_nested_write_during_provider_notification_is_rejected() -> None:
    history = _RecordingHistory(notify_on_write=True)
    first = _controller({"x": "start"}, history)
    second = _controller({"y": "1"}, history)
    errors: list[type[BaseException]] = []

    def write_back(change: StateChange) -> None:
        try:
            first.set_state({"x": "nested"})
        except UrlStateError as exc:
            errors.append(type(exc))

    second.subscribe(write_back)
    first.set_state({"x": "outer"})

    assert errors == [UrlStateError]
    assert first.state["x"] == "outer"
    assert QueryStringCodec().parse(history.current_location().query)["x"] == "outer"
    assert first.last_query == history.current_location().query
    assert second.state["x"] == "outer"

    # The guard is released once the write has been committed.
    first.set_state({"x": "after"})
    assert first.state["x"] == "after"


class _ExplodingCodec:
    def parse(self, query: str) -> dict[str, Any]:
        raise ValueError("cannot parse")

    def stringify(self, state: Mapping[str, Any]) -> str:
        if state.get("bad"):
            raise ValueError("cannot stringify")
        return "&".join(f"{k}={v}" for k, v in state.items())


def test_codec_parse_failure_falls_back_to_defaults() -> None:
    history = _RecordingHistory("/?color=blue")
    ctl = create_url_state({"color": "red"}, provider=history, codec=_ExplodingCodec())

    assert dict(ctl.state) == {"color": "red"}
    assert history.current_location().query == "color=red"


def test_codec_stringify_failure_is_raised_before_writing() -> None:
    history = _RecordingHistory()
    ctl = create_url_state({"color": "red"}, provider=history, codec=_ExplodingCodec())
    calls_before = list(history.calls)

    with pytest.raises(UrlStateCodecError):
        ctl.set_state({"bad": "yes"})
    assert history.calls == calls_before
    assert dict(ctl.state) == {"color": "red"}


# ------------------------------------------------------------------
# Location notifications
# ------------------------------------------------------------------


def test_external_navigation_updates_snapshot_without_writing() -> None:
    history = _RecordingHistory()
    ctl = _controller({"color": "red"}, history)
    ctl.set_state({"color": "green"})
    calls_before = list(history.calls)

    history.navigate("/?color=purple")

    assert dict(ctl.state) == {"color": "purple"}
    assert history.calls == calls_before


def test_back_and_forward_restore_state() -> None:
    history = _RecordingHistory()
    ctl = _controller({"color": "red"}, history, should_push=always_push)
    ctl.set_state({"color": "green"})
    ctl.set_state({"color": "blue"})

    history.back()
    assert ctl.state["color"] == "green"
    history.back()
    assert ctl.state["color"] == "red"
    history.forward()
    assert ctl.state["color"] == "green"


def test_notification_merges_with_initial_defaults() -> None:
    history = _RecordingHistory()
    ctl = _controller({"color": "red", "size": "m"}, history)
    ctl.set_state({"size": "xl"})

    history.navigate("/?color=teal")

    assert dict(ctl.state) == {"color": "teal", "size": "m"}


def test_malformed_external_query_falls_back_to_defaults() -> None:
    history = _RecordingHistory()
    ctl = _controller({"color": "red"}, history)

    history.navigate("/?=oops&&=")

    assert dict(ctl.state) == {"color": "red"}


def test_self_notification_does_not_update_snapshot_twice() -> None:
    history = _RecordingHistory(notify_on_write=True)
    ctl = _controller({"color": "red"}, history, should_push=always_push)
    changes: list[StateChange] = []
    ctl.subscribe(changes.append)

    ctl.set_state({"color": "green"})

    assert [change.source for change in changes] == [ChangeSource.SET_STATE]
    assert dict(ctl.state) == {"color": "green"}


def test_no_updates_after_dispose() -> None:
    history = _RecordingHistory()
    ctl = _controller({"color": "red"}, history)
    ctl.dispose()
    ctl.dispose()

    history.navigate("/?color=purple")

    assert dict(ctl.state) == {"color": "red"}
    assert ctl.lifecycle is Lifecycle.DISPOSED


def test_context_manager_disposes() -> None:
    history = _RecordingHistory()
    with UrlStateController({"color": "red"}, UrlStateConfig(provider=history)) as ctl:
        assert ctl.is_active

    history.navigate("/?color=purple")
    assert not ctl.is_active
    assert ctl.state["color"] == "red"


def test_controllers_sharing_a_provider_see_each_others_writes() -> None:
    history = _RecordingHistory(notify_on_write=True)
    colors = _controller({"color": "red"}, history)
    shapes = _controller({"shape": "circle"}, history)

    colors.set_state({"color": "green"})
    shapes.set_state({"shape": "square"})

    assert QueryStringCodec().parse(history.current_location().query) == {"color": "green", "shape": "square"}
    assert colors.state["shape"] == "square"
    assert shapes.state["color"] == "green"


# ------------------------------------------------------------------
# Observers
# ------------------------------------------------------------------


def test_observers_receive_changes() -> None:
    history = _RecordingHistory()
    ctl = _controller({"color": "red"}, history)
    changes: list[StateChange] = []
    unsubscribe = ctl.subscribe(changes.append)

    ctl.set_state({"color": "green"})
    history.navigate("/?color=blue")
    unsubscribe()
    unsubscribe()
    ctl.set_state({"color": "pink"})

    assert len(changes) == 2
    assert changes[0].source is ChangeSource.SET_STATE
    assert changes[0].action is HistoryAction.REPLACE
    assert changes[0].changed_keys == frozenset({"color"})
    assert changes[1].source is ChangeSource.LOCATION
    assert changes[1].action is None
    assert changes[1].current == {"color": "blue"}


def test_failing_observer_does_not_undo_change() -> None:
    ctl = _controller({"color": "red"}, _RecordingHistory())

    def broken(change: StateChange) -> None:
        raise RuntimeError("observer bug")

    ctl.subscribe(broken)
    ctl.set_state({"color": "green"})

    assert ctl.state["color"] == "green"


def test_subscribe_after_dispose_raises() -> None:
    ctl = _controller({"color": "red"}, _RecordingHistory())
    ctl.dispose()

    with pytest.raises(UrlStateDisposedError):
        ctl.subscribe(lambda change: None)


def test_controllers_on_the_default_provider_keep_each_others_fields() -> None:
    reset_default_history()
    try:
        colors = UrlStateController({"color": "red"})
        shapes = UrlStateController({"shape": "circle"})

        colors.set_state({"color": "green"})
        assert QueryStringCodec().parse(default_history().current_location().query) == {
            "color": "green",
            "shape": "circle",
        }
        assert shapes.state["color"] == "green"

        shapes.set_state({"shape": "square"})
        assert QueryStringCodec().parse(default_history().current_location().query) == {
            "color": "green",
            "shape": "square",
        }
        assert colors.state["shape"] == "square"
        assert default_history().length == 1

        colors.dispose()
        shapes.dispose()
    finally:
        reset_default_history()
