"""Query-string codecs.

Default wire format (stable, shared links depend on it):

* ``key=value`` pairs joined by ``&``, no leading ``?`` unless
  :attr:`CodecOptions.add_query_prefix` is set;
* keys and values percent-encoded (RFC 3986, spaces as ``%20`` unless
  :attr:`CodecOptions.space_as_plus`);
* ``None`` fields omitted entirely, which is how a field is cleared;
* ``True``/``False`` rendered as ``true``/``false``;
* list and tuple values repeat the key once per element.

Parsing is fail-soft: a malformed query yields fewer fields, never an
exception, so a hand-edited link degrades to the application's defaults.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Annotated, Any, Protocol, runtime_checkable
from urllib.parse import parse_qsl, quote, quote_plus, urlencode

from pydantic import BaseModel, TypeAdapter, ValidationError
from pydantic_core import PydanticSerializationError

from pyurlstate._redact import redact_query_for_log
from pyurlstate.config import CodecOptions
from pyurlstate.exceptions import UrlStateCodecError

_logger = logging.getLogger(__name__)


@runtime_checkable
class Codec(Protocol):
    """Converts between a state mapping and query text."""

    def parse(self, query: str) -> dict[str, Any]:
        ...

    def stringify(self, state: Mapping[str, Any]) -> str:
        ...


def _scalar_to_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class QueryStringCodec:
    """Flat ``key=value&...`` codec used when no codec is configured."""

    def __init__(self, options: CodecOptions | None = None) -> None:
        self._options = options or CodecOptions()

    @property
    def options(self) -> CodecOptions:
        return self._options

    def parse(self, query: str) -> dict[str, Any]:
        """Parse *query* into a mapping; repeated keys become lists."""
        if not isinstance(query, str):
            return {}
        try:
            pairs = parse_qsl(
                query.removeprefix("?"),
                keep_blank_values=True,
                errors="replace",
                max_num_fields=self._options.max_fields,
            )
        except ValueError:
            _logger.debug("Query ignored, too many fields: %s", redact_query_for_log(query))
            return {}

        parsed: dict[str, Any] = {}
        for key, value in pairs:
            if not key:
                continue
            existing = parsed.get(key)
            if existing is None:
                parsed[key] = value
            elif isinstance(existing, list):
                existing.append(value)
            else:
                parsed[key] = [existing, value]
        return parsed

    def stringify(self, state: Mapping[str, Any]) -> str:
        """Serialize *state*; ``None`` fields and mapping values are omitted."""
        keys = sorted(state) if self._options.sort_keys else list(state)
        pairs: list[tuple[str, str]] = []
        for key in keys:
            value = state[key]
            if value is None:
                continue
            if isinstance(value, Mapping):
                _logger.debug("Field %r dropped, nested mappings have no query form", key)
                continue
            if isinstance(value, (list, tuple)):
                pairs.extend((str(key), _scalar_to_text(item)) for item in value if item is not None)
            else:
                pairs.append((str(key), _scalar_to_text(value)))

        query = urlencode(pairs, quote_via=quote_plus if self._options.space_as_plus else quote)
        if query and self._options.add_query_prefix:
            return f"?{query}"
        return query


class ModelCodec:
    """Codec for state described by a pydantic model.

    Each field is validated on its own, so one bad value in a shared link
    only drops that field; the rest of the query still applies.  Required
    model fields are not enforced: the controller merges parsed fields over
    the caller's initial state.
    """

    def __init__(self, model: type[BaseModel], options: CodecOptions | None = None) -> None:
        self._model = model
        self._query = QueryStringCodec(options)
        self._adapters: dict[str, TypeAdapter[Any]] = {}
        self._names: dict[str, str] = {}
        for name, info in model.model_fields.items():
            annotation: Any = info.annotation
            if info.metadata:
                annotation = Annotated[(annotation, *info.metadata)]
            self._adapters[name] = TypeAdapter(annotation)
            self._names[name] = name
            if info.alias:
                self._names[info.alias] = name

    @property
    def model(self) -> type[BaseModel]:
        return self._model

    def defaults(self) -> dict[str, Any]:
        """Field defaults of the model, suitable as a controller's initial state."""
        return {
            name: info.get_default(call_default_factory=True)
            for name, info in self._model.model_fields.items()
            if not info.is_required()
        }

    def _validate(self, name: str, value: Any) -> Any:
        adapter = self._adapters[name]
        try:
            return adapter.validate_python(value)
        except ValidationError:
            if isinstance(value, list) and value:
                return adapter.validate_python(value[-1])
            if isinstance(value, str):
                return adapter.validate_python([value])
            raise

    def parse(self, query: str) -> dict[str, Any]:
        parsed: dict[str, Any] = {}
        for key, value in self._query.parse(query).items():
            name = self._names.get(key)
            if name is None:
                continue
            try:
                parsed[name] = self._validate(name, value)
            except ValidationError:
                _logger.debug("Field %r dropped, value failed validation", key)
        return parsed

    def stringify(self, state: Mapping[str, Any]) -> str:
        plain: dict[str, Any] = {}
        for key, value in state.items():
            name = self._names.get(key)
            if name is None or value is None:
                plain[key] = value
                continue
            try:
                plain[key] = self._adapters[name].dump_python(value, mode="json")
            except PydanticSerializationError as exc:
                raise UrlStateCodecError(f"Cannot serialize field {key!r}: {exc}", field=key) from exc
        return self._query.stringify(plain)
