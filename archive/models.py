"""
Data models for the tick feed.
Uses Decimal for all prices, so scale correction never rounds through float.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional

from archive.errors import FeedError, InvalidTimeRange

ONE_HOUR = timedelta(hours=1)
RECORD_WIDTH = 20
EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


# ==================== Time Helpers ====================

def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes, convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def floor_hour(value: datetime) -> datetime:
    return ensure_utc(value).replace(minute=0, second=0, microsecond=0)


def ceil_hour(value: datetime) -> datetime:
    floored = floor_hour(value)
    return floored if floored == ensure_utc(value) else floored + ONE_HOUR


def to_epoch_ms(value: datetime) -> int:
    return (ensure_utc(value) - EPOCH) // timedelta(milliseconds=1)


def from_epoch_ms(ms: int) -> datetime:
    return EPOCH + timedelta(milliseconds=ms)


# ==================== Enums ====================

class FetchStatus(Enum):
    DATA = "DATA"
    NO_DATA = "NO_DATA"
    TRANSIENT_ERROR = "TRANSIENT_ERROR"
    FATAL_ERROR = "FATAL_ERROR"


class GapReason(Enum):
    NO_DATA = "NO_DATA"
    FETCH_FAILED = "FETCH_FAILED"
    DECODE_FAILED = "DECODE_FAILED"


class SegmentState(Enum):
    PENDING = "PENDING"
    FETCHING = "FETCHING"
    DECODING = "DECODING"
    DONE = "DONE"
    FAILED_TRANSIENT = "FAILED_TRANSIENT"
    FAILED_FATAL = "FAILED_FATAL"
    GAP = "GAP"


# ==================== Inputs ====================

@dataclass(frozen=True)
class Instrument:
    """Static instrument metadata."""
    symbol: str
    price_scale: int            # Stored integer / price_scale = price
    point_value: Decimal


@dataclass(frozen=True)
class TimeRange:
    """Inclusive UTC range. Naive datetimes are read as UTC."""
    start: datetime
    end: datetime

    def __post_init__(self):
        object.__setattr__(self, "start", ensure_utc(self.start))
        object.__setattr__(self, "end", ensure_utc(self.end))
        if self.start > self.end:
            raise InvalidTimeRange(
                f"start {self.start.isoformat()} is after end {self.end.isoformat()}"
            )

    def hours(self) -> List[datetime]:
        """Every hour boundary from floor(start) to ceil(end), inclusive."""
        current = floor_hour(self.start)
        last = ceil_hour(self.end)
        hours = []
        while current <= last:
            hours.append(current)
            current += ONE_HOUR
        return hours


@dataclass(frozen=True, order=True)
class SegmentKey:
    """One remote hourly resource. Orders chronologically."""
    hour: datetime
    instrument: Instrument = field(compare=False)

    def __post_init__(self):
        object.__setattr__(self, "hour", floor_hour(self.hour))


@dataclass(frozen=True)
class DecodeParams:
    price_scale: int
    record_width: int = RECORD_WIDTH


@dataclass(frozen=True)
class RawSegment:
    """Compressed bytes for one hour, alive only between fetch and decode."""
    key: SegmentKey
    data: bytes


# ==================== Ticks ====================

@dataclass(frozen=True)
class Tick:
    """Bid/ask observation at one millisecond."""
    timestamp: int              # Unix ms
    bid: Decimal
    ask: Decimal
    bid_volume: float
    ask_volume: float

    @property
    def time(self) -> datetime:
        return from_epoch_ms(self.timestamp)

    @property
    def spread(self) -> Decimal:
        return self.ask - self.bid

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "time": self.time.isoformat(timespec="milliseconds"),
            "bid": str(self.bid),
            "ask": str(self.ask),
            "bid_volume": self.bid_volume,
            "ask_volume": self.ask_volume,
        }

    def __str__(self) -> str:
        t = self.time
        return (
            f"{t.date()} {t.time().isoformat(timespec='milliseconds')}\t\t"
            f"{str(self.ask):<16} {str(self.bid):<16} "
            f"{self.ask_volume!s:<26} {self.bid_volume!s:<26}"
        ).rstrip()


# ==================== Fetch / Segment Results ====================

@dataclass(frozen=True)
class FetchOutcome:
    """Tagged result of fetching one segment."""
    status: FetchStatus
    data: Optional[bytes] = None
    error: Optional[str] = None
    status_code: Optional[int] = None
    attempts: int = 1

    @classmethod
    def of_data(cls, data: bytes, status_code: int = 200) -> "FetchOutcome":
        return cls(FetchStatus.DATA, data=data, status_code=status_code)

    @classmethod
    def no_data(cls, status_code: Optional[int] = None) -> "FetchOutcome":
        return cls(FetchStatus.NO_DATA, status_code=status_code)

    @classmethod
    def transient(cls, error: str, status_code: Optional[int] = None) -> "FetchOutcome":
        return cls(FetchStatus.TRANSIENT_ERROR, error=error, status_code=status_code)

    @classmethod
    def fatal(cls, error: str, status_code: Optional[int] = None) -> "FetchOutcome":
        return cls(FetchStatus.FATAL_ERROR, error=error, status_code=status_code)

    @property
    def is_error(self) -> bool:
        return self.status in (FetchStatus.TRANSIENT_ERROR, FetchStatus.FATAL_ERROR)


@dataclass(frozen=True)
class Gap:
    """Hour that produced no ticks, with the reason why."""
    hour: datetime
    reason: GapReason
    error: Optional[str] = None

    @property
    def is_failure(self) -> bool:
        return self.reason != GapReason.NO_DATA


@dataclass
class SegmentResult:
    """Message a worker hands back to the orchestrator for one key."""
    key: SegmentKey
    state: SegmentState = SegmentState.PENDING
    ticks: List[Tick] = field(default_factory=list)
    gap: Optional[Gap] = None
    error: Optional[FeedError] = None


@dataclass(frozen=True)
class OrderingAnomaly:
    """A tick whose timestamp is lower than the one before it."""
    index: int
    previous_timestamp: int
    timestamp: int
    previous_hour: datetime
    hour: datetime

    @property
    def crosses_hours(self) -> bool:
        return self.previous_hour != self.hour

    def describe(self) -> str:
        return (
            f"tick #{self.index} at {self.timestamp} precedes previous tick at "
            f"{self.previous_timestamp} (hours {self.previous_hour:%Y-%m-%d %H}h -> "
            f"{self.hour:%Y-%m-%d %H}h)"
        )


@dataclass
class TickSeries:
    """Hour-ordered ticks for one instrument and range, plus gap record."""
    instrument: Instrument
    time_range: TimeRange
    ticks: List[Tick] = field(default_factory=list)
    gaps: Dict[datetime, Gap] = field(default_factory=dict)
    anomalies: List[OrderingAnomaly] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.ticks)

    def __iter__(self) -> Iterator[Tick]:
        return iter(self.ticks)

    @property
    def gap_hours(self) -> List[datetime]:
        return sorted(self.gaps)

    @property
    def failed_hours(self) -> List[datetime]:
        return sorted(h for h, gap in self.gaps.items() if gap.is_failure)

    @property
    def is_complete(self) -> bool:
        """True when no hour is missing because of an error."""
        return not self.failed_hours

    @property
    def is_ordered(self) -> bool:
        return not self.anomalies

    def to_records(self) -> List[Dict[str, Any]]:
        return [tick.to_dict() for tick in self.ticks]
