"""Custom exception hierarchy for pyurlstate."""

from __future__ import annotations


class UrlStateError(Exception):
    """Base exception for all pyurlstate errors."""


class UrlStateConfigError(UrlStateError):
    """Invalid or missing configuration."""


class UrlStateDisposedError(UrlStateError):
    """Controller used after ``dispose()``.

    Disposal only detaches the controller from its location provider; it is
    never reconnected implicitly, so any further update is a usage-order bug
    in the caller.
    """


class UrlStatePolicyError(UrlStateError):
    """The push/replace policy raised while evaluating a transition.

    The original exception is chained as ``__cause__``.  No navigation
    mutation happens when this is raised.
    """


class UrlStateCodecError(UrlStateError):
    """Codec failed to serialize a state value into a query string.

    Parsing never raises; only ``stringify`` failures surface as this error.
    """

    def __init__(self, message: str, *, field: str = "") -> None:
        self.field = field
        super().__init__(message)
