"""Navigable location model."""

from __future__ import annotations

from urllib.parse import urlsplit

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Location(BaseModel):
    """A navigable location decomposed into path, query and fragment.

    ``query`` is stored without its leading ``?`` and ``fragment`` without
    its leading ``#``; validators strip them so either spelling is accepted.
    """

    model_config = ConfigDict(frozen=True)

    path: str = Field(default="/", description="Path component, preserved verbatim")
    query: str = Field(default="", description="Query component without '?'")
    fragment: str = Field(default="", description="Fragment component without '#'")

    @field_validator("query")
    @classmethod
    def _strip_query_prefix(cls, value: str) -> str:
        return value.removeprefix("?")

    @field_validator("fragment")
    @classmethod
    def _strip_fragment_prefix(cls, value: str) -> str:
        return value.removeprefix("#")

    @classmethod
    def from_url(cls, url: str) -> Location:
        """Build a location from a URL or a relative reference like ``/p?a=1#x``.

        Scheme and authority, if present, are discarded.
        """
        parts = urlsplit(url)
        return cls(path=parts.path or "/", query=parts.query, fragment=parts.fragment)

    @property
    def search(self) -> str:
        """The query with a leading ``?``, or ``""`` when empty."""
        return f"?{self.query}" if self.query else ""

    @property
    def href(self) -> str:
        fragment = f"#{self.fragment}" if self.fragment else ""
        return f"{self.path}{self.search}{fragment}"

    def with_query(self, query: str) -> Location:
        """Return a copy with only the query replaced."""
        return Location(path=self.path, query=query, fragment=self.fragment)

    def __str__(self) -> str:
        return self.href
