"""
Feed Errors - Typed failures raised by the retrieval pipeline.
A call either returns a TickSeries or raises exactly one of these.
"""

from __future__ import annotations
from datetime import datetime
from typing import Optional


class FeedError(Exception):
    """Base class for every error raised by the feed."""


class UnknownInstrument(FeedError):
    """Symbol is not present in the instrument metadata table."""

    def __init__(self, symbol: str):
        super().__init__(f"Unknown instrument: {symbol!r}")
        self.symbol = symbol


class InvalidTimeRange(FeedError):
    """Requested range has start after end."""


class TransportError(FeedError):
    """Connection-level failure reported by a transport (reset, DNS, refused)."""


class SegmentError(FeedError):
    """Failure attributable to one hourly segment."""

    def __init__(self, message: str, hour: Optional[datetime] = None, url: Optional[str] = None):
        super().__init__(message)
        self.hour = hour
        self.url = url


class TransientFetchError(SegmentError):
    """Fetch kept failing transiently until retries were exhausted."""


class FatalFetchError(SegmentError):
    """Remote reported the segment as permanently unavailable."""


class DecodeError(SegmentError):
    """Segment bytes could not be turned into ticks."""


class DecompressionError(DecodeError):
    """LZMA stream is corrupt or truncated."""


class MalformedSegmentError(DecodeError):
    """Decompressed buffer is not a whole number of records."""
