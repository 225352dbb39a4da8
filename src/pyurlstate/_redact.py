"""Helpers for safe debug logging.

Query strings are shared, bookmarked and pasted into tickets, but the state
behind them can still carry secrets (tokens, passwords, signed parameters).
This module redacts sensitive fields before emitting DEBUG logs.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any
from urllib.parse import parse_qsl, urlencode

_SENSITIVE_VALUE_KEYS: frozenset[str] = frozenset(
    {
        "password",
        "passwd",
        "secret",
        "token",
        "accesstoken",
        "refreshtoken",
        "idtoken",
        "apikey",
        "authorization",
        "cookie",
        "session",
        "sessionid",
        "signature",
        "sig",
    }
)


def _is_sensitive(key: str) -> bool:
    return key.lower().replace("_", "").replace("-", "") in _SENSITIVE_VALUE_KEYS


def redact_for_log(value: Any, *, max_string: int = 512, _depth: int = 0) -> Any:
    """Return a redacted copy of *value* suitable for debug logs."""
    if _depth > 20:
        return "<max-depth>"

    if value is None:
        return None

    if isinstance(value, str):
        if len(value) > max_string:
            return f"{value[:max_string]}…<truncated>"
        return value

    if isinstance(value, (int, float, bool)):
        return value

    if isinstance(value, bytes):
        return f"<bytes:{len(value)}b>"

    if isinstance(value, Mapping):
        redacted: dict[str, Any] = {}
        for k, v in value.items():
            key = str(k)
            if _is_sensitive(key):
                redacted[key] = "<redacted>"
            else:
                redacted[key] = redact_for_log(v, max_string=max_string, _depth=_depth + 1)
        return redacted

    if isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray)):
        return [redact_for_log(v, max_string=max_string, _depth=_depth + 1) for v in value]

    # Fallback: represent unknown objects without dumping internals.
    return repr(value)


def redact_query_for_log(query: str, *, max_string: int = 512) -> str:
    """Return *query* with the values of sensitive keys replaced.

    Unparseable input is returned truncated rather than raising.
    """
    try:
        pairs = parse_qsl(query.removeprefix("?"), keep_blank_values=True)
    except ValueError:
        return redact_for_log(query, max_string=max_string)
    if not any(_is_sensitive(key) for key, _ in pairs):
        return redact_for_log(query, max_string=max_string)
    cleaned = [(key, "<redacted>" if _is_sensitive(key) else value) for key, value in pairs]
    return redact_for_log(urlencode(cleaned, safe="<>"), max_string=max_string)
