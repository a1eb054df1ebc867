"""Exception hierarchy shared by the refresh pipeline."""

from __future__ import annotations


class TrendboardError(Exception):
    """Base class for trendboard failures."""


class FetchError(TrendboardError):
    """A category listing could not be retrieved."""

    def __init__(self, message: str, url: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class CacheIOError(TrendboardError):
    """The persisted cache document could not be read or written."""


class RefreshFailed(TrendboardError):
    """A refresh run aborted outside the per-category failure policy."""


__all__ = ["CacheIOError", "FetchError", "RefreshFailed", "TrendboardError"]
