"""pyurlstate - keep application state in sync with a URL query string."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pyurlstate")
except PackageNotFoundError:
    __version__ = "0+local"
from pyurlstate.binding import bind_url_state, url_state
from pyurlstate.codec import Codec, ModelCodec, QueryStringCodec
from pyurlstate.config import CodecOptions, UrlStateConfig
from pyurlstate.exceptions import (
    UrlStateCodecError,
    UrlStateConfigError,
    UrlStateDisposedError,
    UrlStateError,
    UrlStatePolicyError,
)
from pyurlstate.history.adapter import LocationProvider, Unsubscribe
from pyurlstate.history.location import Location
from pyurlstate.history.memory import MemoryHistory, default_history, reset_default_history
from pyurlstate.state.controller import Lifecycle, UrlStateController, create_url_state
from pyurlstate.state.events import ChangeSource, StateChange
from pyurlstate.state.policy import (
    HistoryAction,
    Policy,
    always_push,
    always_replace,
    push_when_changed,
)

__all__ = [
    "__version__",
    "ChangeSource",
    "Codec",
    "CodecOptions",
    "HistoryAction",
    "Lifecycle",
    "Location",
    "LocationProvider",
    "MemoryHistory",
    "ModelCodec",
    "Policy",
    "QueryStringCodec",
    "StateChange",
    "Unsubscribe",
    "UrlStateCodecError",
    "UrlStateConfig",
    "UrlStateConfigError",
    "UrlStateController",
    "UrlStateDisposedError",
    "UrlStateError",
    "UrlStatePolicyError",
    "always_push",
    "always_replace",
    "bind_url_state",
    "create_url_state",
    "default_history",
    "push_when_changed",
    "reset_default_history",
    "url_state",
]
