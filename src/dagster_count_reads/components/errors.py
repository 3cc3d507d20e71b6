"""
Error types raised while planning, fetching and counting reads.
"""

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .intervals import Interval


class CountReadsError(Exception):
    """Base class for read counting failures."""


class InvalidRangeError(CountReadsError, ValueError):
    """A region or interval is malformed (start > end, negative start, bad number)."""


class ConfigurationError(CountReadsError):
    """The pipeline configuration cannot be run as given."""


class RetriableFetchError(CountReadsError):
    """Transient failure of a single page fetch (network, throttling, 5xx)."""


class FatalFetchError(CountReadsError):
    """A shard fetch failed for good: auth failure, bad request or retries exhausted."""

    def __init__(self, message: str, interval: Optional["Interval"] = None):
        self.interval = interval
        if interval is not None:
            message = f"{interval}: {message}"
        super().__init__(message)


class FetchCancelledError(CountReadsError):
    """The run was cancelled while a shard fetch was in flight."""
