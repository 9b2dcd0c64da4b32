from __future__ import annotations

import math


class GeoSearchError(Exception):
    """Base class for errors surfaced to callers of the search engine."""


class ProviderError(GeoSearchError):
    """The external search provider failed; nothing was inserted."""

    def __init__(self, message: str, *, kind: str | None = None) -> None:
        super().__init__(message)
        self.kind = kind


class CooldownError(GeoSearchError):
    """An address search was attempted before its cooldown window elapsed."""

    def __init__(self, remaining_s: float) -> None:
        self.remaining_s = max(int(math.ceil(remaining_s)), 1)
        super().__init__(
            f"Please wait {self.remaining_s} seconds before searching again"
        )


class UnknownSearchError(GeoSearchError, KeyError):
    def __init__(self, search_id: str) -> None:
        super().__init__(search_id)
        self.search_id = search_id

    def __str__(self) -> str:
        return f"unknown search id: {self.search_id}"


class PayloadError(GeoSearchError, ValueError):
    """A restore/export payload could not be decoded or validated."""
