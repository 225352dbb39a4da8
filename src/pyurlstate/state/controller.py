"""Sync controller.

The only component with a lifecycle.  It owns the snapshot, writes every
update to the location provider, and re-absorbs location changes it did not
make itself.
"""

from __future__ import annotations

import itertools
import logging
from collections.abc import Callable, Mapping
from enum import StrEnum
from types import MappingProxyType, TracebackType
from typing import Any

from pyurlstate._redact import redact_for_log, redact_query_for_log
from pyurlstate.codec import Codec, QueryStringCodec
from pyurlstate.config import UrlStateConfig
from pyurlstate.exceptions import UrlStateCodecError, UrlStateDisposedError, UrlStateError
from pyurlstate.history.adapter import LocationProvider, Unsubscribe
from pyurlstate.history.memory import default_history
from pyurlstate.state.events import ChangeSource, StateChange
from pyurlstate.state.policy import HistoryAction, Policy, always_replace, resolve_history_action

_logger = logging.getLogger(__name__)

State = Mapping[str, Any]
StateUpdate = State | Callable[[State], State]


class Lifecycle(StrEnum):
    UNINITIALIZED = "uninitialized"
    ACTIVE = "active"
    DISPOSED = "disposed"


def _merge(base: State, patch: State) -> dict[str, Any]:
    """Merge-and-keep: keys in *patch* overwrite, everything else survives."""
    merged = dict(base)
    merged.update(patch)
    return merged


class UrlStateController:
    """Keeps a state mapping in sync with a location's query string.

    Usage::

        with UrlStateController({"color": "red"}) as ctl:
            ctl.set_state({"color": "green"})
            ctl.set_state(lambda prev: {"zoom": str(int(prev["zoom"]) + 1)})

    On construction the location's query is parsed and merged over
    *initial_state* (a shared link beats hardcoded defaults), the result is
    written back with a single ``replace`` and the controller subscribes to
    the provider.  ``set_state`` commits synchronously: the snapshot returned
    by :meth:`get_state` right after the call reflects that call.
    """

    def __init__(self, initial_state: State, config: UrlStateConfig | None = None) -> None:
        config = config or UrlStateConfig()
        self._provider: LocationProvider = config.provider if config.provider is not None else default_history()
        self._codec: Codec = config.codec if config.codec is not None else QueryStringCodec(config.codec_options)
        self._should_push: Policy = config.should_push
        self._defaults: dict[str, Any] = dict(initial_state)
        self._snapshot: State = MappingProxyType({})
        self._last_query: str | None = None
        self._unsubscribe: Unsubscribe | None = None
        self._observers: dict[int, Callable[[StateChange], None]] = {}
        self._observer_tokens = itertools.count()
        self._updating = False
        self._lifecycle = Lifecycle.UNINITIALIZED
        self._activate()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _activate(self) -> None:
        location = self._provider.current_location()
        snapshot = _merge(self._defaults, self._parse(location.query))
        normalized = location.with_query(self._stringify(snapshot))
        query = normalized.query

        # Normalize the address without adding a history entry.
        self._provider.replace(normalized)
        self._commit(snapshot, query)
        self._unsubscribe = self._provider.subscribe(self._on_location_change)
        self._lifecycle = Lifecycle.ACTIVE
        _logger.debug("Controller active query=%s", redact_query_for_log(query))

    def dispose(self) -> None:
        """Detach from the provider.  The location is left as it is."""
        if self._lifecycle is Lifecycle.DISPOSED:
            return
        unsubscribe, self._unsubscribe = self._unsubscribe, None
        self._lifecycle = Lifecycle.DISPOSED
        self._observers.clear()
        if unsubscribe is not None:
            unsubscribe()
        _logger.debug("Controller disposed")

    def __enter__(self) -> UrlStateController:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.dispose()

    # ------------------------------------------------------------------
    # State access
    # ------------------------------------------------------------------

    def get_state(self) -> State:
        return self._snapshot

    @property
    def state(self) -> State:
        return self._snapshot

    def set_state(self, update: StateUpdate, history_action: HistoryAction | str | None = None) -> State:
        """Apply *update* and write the result to the location.

        Parameters
        ----------
        update : mapping or callable
            Fields to merge over the current snapshot, or a pure function of
            the current snapshot returning such fields.
        history_action : HistoryAction, str or None
            ``"push"`` or ``"replace"`` to bypass the configured policy for
            this call.

        Returns
        -------
        Mapping
            The new snapshot.

        Raises
        ------
        UrlStateDisposedError
            The controller was disposed.
        UrlStatePolicyError
            The policy raised; the location was not touched.
        UrlStateCodecError
            The codec could not serialize the new state.
        """
        if self._lifecycle is not Lifecycle.ACTIVE:
            raise UrlStateDisposedError("set_state called on a disposed controller")
        if self._updating:
            raise UrlStateError("set_state called re-entrantly while an update is in progress")

        current = self._snapshot
        # Held from the updater call through the commit, so a nested write
        # (from an updater or from a listener the provider notifies during
        # our own write) cannot interleave with this one.
        self._updating = True
        try:
            change = self._apply_update(current, update, history_action)
        finally:
            self._updating = False

        self._emit(change)
        return self._snapshot

    def _apply_update(
        self,
        current: State,
        update: StateUpdate,
        history_action: HistoryAction | str | None,
    ) -> StateChange:
        patch = update(current) if callable(update) else update
        if not isinstance(patch, Mapping):
            raise TypeError(f"State update must be a mapping, got {type(patch).__name__}")

        next_state = _merge(current, patch)
        next_location = self._provider.current_location().with_query(self._stringify(next_state))
        next_query = next_location.query
        action = resolve_history_action(self._should_push, next_state, current, history_action)

        # Record the query before writing so a provider that notifies
        # synchronously on its own writes is recognised as an echo.
        previous_query, self._last_query = self._last_query, next_query
        try:
            if action is HistoryAction.PUSH:
                self._provider.push(next_location)
            else:
                self._provider.replace(next_location)
        except Exception:
            self._last_query = previous_query
            raise

        _logger.debug(
            "State %s query=%s state=%s",
            action.value,
            redact_query_for_log(next_query),
            redact_for_log(next_state),
        )
        self._commit(next_state, next_query)
        return StateChange(
            source=ChangeSource.SET_STATE,
            previous=dict(current),
            current=dict(next_state),
            query=next_query,
            action=action,
        )

    # ------------------------------------------------------------------
    # Observers
    # ------------------------------------------------------------------

    def subscribe(self, listener: Callable[[StateChange], None]) -> Unsubscribe:
        """Register *listener* for every committed snapshot change."""
        if self._lifecycle is not Lifecycle.ACTIVE:
            raise UrlStateDisposedError("subscribe called on a disposed controller")
        token = next(self._observer_tokens)
        self._observers[token] = listener

        def _unsubscribe() -> None:
            self._observers.pop(token, None)

        return _unsubscribe

    def _emit(self, change: StateChange) -> None:
        for listener in list(self._observers.values()):
            try:
                listener(change)
            except Exception:
                _logger.debug("State observer failed", exc_info=True)

    # ------------------------------------------------------------------
    # Location notifications
    # ------------------------------------------------------------------

    def _on_location_change(self) -> None:
        if self._lifecycle is not Lifecycle.ACTIVE:
            return
        query = self._provider.current_location().query
        if query == self._last_query:
            return

        current = self._snapshot
        next_state = _merge(self._defaults, self._parse(query))
        _logger.debug("Location changed query=%s", redact_query_for_log(query))
        self._commit(next_state, query)
        change = StateChange(
            source=ChangeSource.LOCATION,
            previous=dict(current),
            current=dict(next_state),
            query=query,
        )
        self._emit(change)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _commit(self, state: State, query: str) -> None:
        self._snapshot = MappingProxyType(dict(state))
        self._last_query = query

    def _parse(self, query: str) -> dict[str, Any]:
        try:
            return dict(self._codec.parse(query))
        except Exception:
            _logger.debug("Codec parse failed, using defaults: %s", redact_query_for_log(query), exc_info=True)
            return {}

    def _stringify(self, state: State) -> str:
        try:
            return self._codec.stringify(state)
        except UrlStateCodecError:
            raise
        except Exception as exc:
            raise UrlStateCodecError(f"Codec stringify failed: {exc}") from exc

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def lifecycle(self) -> Lifecycle:
        return self._lifecycle

    @property
    def is_active(self) -> bool:
        return self._lifecycle is Lifecycle.ACTIVE

    @property
    def provider(self) -> LocationProvider:
        return self._provider

    @property
    def codec(self) -> Codec:
        return self._codec

    @property
    def last_query(self) -> str | None:
        """Query the current snapshot was last synced with."""
        return self._last_query


def create_url_state(
    initial_state: State,
    *,
    provider: LocationProvider | None = None,
    codec: Codec | None = None,
    should_push: Policy | None = None,
) -> UrlStateController:
    """Build an active controller from individual collaborators."""
    config = UrlStateConfig(provider=provider, codec=codec, should_push=should_push or always_replace)
    return UrlStateController(initial_state, config)
