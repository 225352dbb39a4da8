"""Controller and codec configuration for pyurlstate."""

from __future__ import annotations

import dataclasses
import os
from typing import TYPE_CHECKING, Any

from pyurlstate.exceptions import UrlStateConfigError
from pyurlstate.state.policy import HistoryAction, Policy, always_push, always_replace

if TYPE_CHECKING:
    from pyurlstate.codec import Codec
    from pyurlstate.history.adapter import LocationProvider


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


@dataclasses.dataclass(frozen=True)
class CodecOptions:
    """Wire-format knobs for the default query-string codec.

    Parameters
    ----------
    add_query_prefix : bool
        Prefix non-empty output of ``stringify`` with ``?``.
    sort_keys : bool
        Emit fields in sorted key order instead of state insertion order.
    space_as_plus : bool
        Encode spaces as ``+`` (form style) instead of ``%20``.
    max_fields : int
        Upper bound on the number of ``key=value`` pairs ``parse`` accepts.
        Longer queries parse to an empty mapping.
    """

    add_query_prefix: bool = False
    sort_keys: bool = False
    space_as_plus: bool = False
    max_fields: int = 1000

    def __post_init__(self) -> None:
        if self.max_fields < 1:
            raise UrlStateConfigError(f"max_fields must be positive, got {self.max_fields}")

    @classmethod
    def from_env(cls, **overrides: Any) -> CodecOptions:
        """Create codec options from ``PYURLSTATE_*`` environment variables.

        Explicit keyword arguments override environment values.
        """
        env = os.environ
        kwargs: dict[str, Any] = {}

        _ENV_BOOL_MAP = {
            "PYURLSTATE_ADD_QUERY_PREFIX": "add_query_prefix",
            "PYURLSTATE_SORT_KEYS": "sort_keys",
            "PYURLSTATE_SPACE_AS_PLUS": "space_as_plus",
        }
        for env_key, field_name in _ENV_BOOL_MAP.items():
            if field_name not in overrides:
                kwargs[field_name] = _env_bool(env.get(env_key), getattr(cls, field_name))

        max_fields_env = env.get("PYURLSTATE_MAX_FIELDS")
        if max_fields_env is not None and "max_fields" not in overrides:
            try:
                kwargs["max_fields"] = int(max_fields_env)
            except ValueError as exc:
                raise UrlStateConfigError(f"PYURLSTATE_MAX_FIELDS is not an integer: {max_fields_env!r}") from exc

        kwargs.update(overrides)
        return cls(**kwargs)


@dataclasses.dataclass(frozen=True)
class UrlStateConfig:
    """Controller configuration.

    Parameters
    ----------
    provider : LocationProvider or None
        Where the state is mirrored.  ``None`` selects the process-wide
        :func:`~pyurlstate.history.memory.default_history`.
    codec : Codec or None
        Query serialization.  ``None`` selects
        :class:`~pyurlstate.codec.QueryStringCodec` built from
        ``codec_options``.
    should_push : Policy
        ``(next_state, current_state) -> bool`` deciding push (``True``)
        or replace (``False``).  Defaults to always replacing.
    codec_options : CodecOptions
        Options for the default codec.  Ignored when ``codec`` is given.
    """

    provider: LocationProvider | None = None
    codec: Codec | None = None
    should_push: Policy = always_replace
    codec_options: CodecOptions = dataclasses.field(default_factory=CodecOptions)

    @classmethod
    def from_env(cls, **overrides: Any) -> UrlStateConfig:
        """Create configuration from environment variables.

        Reads ``PYURLSTATE_HISTORY_ACTION`` (``push`` or ``replace``) for the
        default policy, and the codec variables understood by
        :meth:`CodecOptions.from_env`.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        UrlStateConfig
            Populated configuration.
        """
        env = os.environ
        config_kwargs: dict[str, Any] = {}

        action_env = env.get("PYURLSTATE_HISTORY_ACTION")
        if action_env is not None and "should_push" not in overrides:
            try:
                action = HistoryAction(action_env.strip().lower())
            except ValueError as exc:
                raise UrlStateConfigError(
                    f"PYURLSTATE_HISTORY_ACTION must be 'push' or 'replace', got {action_env!r}"
                ) from exc
            config_kwargs["should_push"] = always_push if action is HistoryAction.PUSH else always_replace

        codec_overrides = overrides.pop("codec_options", None)
        if isinstance(codec_overrides, dict):
            config_kwargs["codec_options"] = CodecOptions.from_env(**codec_overrides)
        elif isinstance(codec_overrides, CodecOptions):
            config_kwargs["codec_options"] = codec_overrides
        else:
            config_kwargs["codec_options"] = CodecOptions.from_env()

        config_kwargs.update(overrides)
        return cls(**config_kwargs)
