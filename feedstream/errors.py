"""Error types raised by the feedstream core."""

from __future__ import annotations


class FeedstreamError(Exception):
    """Base class for feedstream errors."""


class FetchError(FeedstreamError):
    """A feed source could not be fetched or parsed."""

    def __init__(self, url: str, reason: str, http_status: int | None = None):
        super().__init__(f"{url}: {reason}")
        self.url = url
        self.reason = reason
        self.http_status = http_status


class ValidationError(FeedstreamError):
    """A normalized entry is missing a required field."""


class StorageError(FeedstreamError):
    """A persistence operation failed."""


class FeedNotFoundError(FeedstreamError):
    """No feed with that id belongs to the user."""


class FeedAlreadyExistsError(FeedstreamError):
    """The user already subscribes to that URL."""
