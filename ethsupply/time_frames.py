"""Time frames over which analyses are computed."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from typing import Iterator


class ParseTimeFrameError(ValueError):
    """Raised when text does not name a known time frame."""

    def __init__(self, time_frame: str) -> None:
        super().__init__(f"failed to parse time frame {time_frame}")
        self.time_frame = time_frame


@dataclass(frozen=True)
class PgInterval:
    """A PostgreSQL interval value."""

    months: int
    days: int
    microseconds: int


class LimitedTimeFrame(Enum):
    """A time frame with a fixed length, ending now."""

    DAY1 = "d1"
    DAY30 = "d30"
    DAY7 = "d7"
    HOUR1 = "h1"
    MINUTE5 = "m5"

    def __str__(self) -> str:
        return self.value

    def epoch_count(self) -> float:
        """Number of beacon chain epochs that fit in this time frame."""
        return _EPOCH_COUNTS[self]

    def postgres_interval(self) -> PgInterval:
        return _INTERVALS[self]

    def to_db_key(self) -> str:
        return _DB_KEYS[self]

    def duration(self) -> timedelta:
        return _DURATIONS[self]


_DURATIONS = {
    LimitedTimeFrame.DAY1: timedelta(days=1),
    LimitedTimeFrame.DAY30: timedelta(days=30),
    LimitedTimeFrame.DAY7: timedelta(days=7),
    LimitedTimeFrame.HOUR1: timedelta(hours=1),
    LimitedTimeFrame.MINUTE5: timedelta(minutes=5),
}

_EPOCH_COUNTS = {
    LimitedTimeFrame.DAY1: 225.0,
    LimitedTimeFrame.DAY30: 6750.0,
    LimitedTimeFrame.DAY7: 1575.0,
    LimitedTimeFrame.HOUR1: 9.375,
    LimitedTimeFrame.MINUTE5: 0.78125,
}

_INTERVALS = {
    LimitedTimeFrame.DAY1: PgInterval(months=0, days=1, microseconds=0),
    LimitedTimeFrame.DAY30: PgInterval(months=0, days=30, microseconds=0),
    LimitedTimeFrame.DAY7: PgInterval(months=0, days=7, microseconds=0),
    LimitedTimeFrame.HOUR1: PgInterval(
        months=0, days=0, microseconds=timedelta(hours=1) // timedelta(microseconds=1)
    ),
    LimitedTimeFrame.MINUTE5: PgInterval(
        months=0, days=0, microseconds=timedelta(minutes=5) // timedelta(microseconds=1)
    ),
}

_DB_KEYS = {
    LimitedTimeFrame.DAY1: "d1",
    LimitedTimeFrame.DAY30: "d1",
    LimitedTimeFrame.DAY7: "d7",
    LimitedTimeFrame.HOUR1: "h1",
    LimitedTimeFrame.MINUTE5: "m5",
}


class TimeFrameKind(Enum):
    SINCE_BURN = "all"
    SINCE_MERGE = "since-merge"
    LIMITED = "limited"


@dataclass(frozen=True)
class TimeFrame:
    """Either an open-ended time frame or a limited one."""

    kind: TimeFrameKind
    limited: LimitedTimeFrame | None = None

    def __post_init__(self) -> None:
        if (self.kind is TimeFrameKind.LIMITED) != (self.limited is not None):
            raise ValueError("a limited time frame, and only that, carries a LimitedTimeFrame")

    def to_db_key(self) -> str:
        if self.limited is not None:
            return self.limited.to_db_key()
        return self.kind.value


def parse_limited_time_frame(text: str) -> LimitedTimeFrame:
    try:
        return LimitedTimeFrame(text)
    except ValueError:
        raise ParseTimeFrameError(text) from None


def parse_time_frame(text: str) -> TimeFrame:
    if text == "all":
        return TimeFrame(TimeFrameKind.SINCE_BURN)
    if text == "since-merge":
        return TimeFrame(TimeFrameKind.SINCE_MERGE)
    return TimeFrame(TimeFrameKind.LIMITED, parse_limited_time_frame(text))


_TIME_FRAMES = (
    TimeFrame(TimeFrameKind.LIMITED, LimitedTimeFrame.MINUTE5),
    TimeFrame(TimeFrameKind.LIMITED, LimitedTimeFrame.HOUR1),
    TimeFrame(TimeFrameKind.LIMITED, LimitedTimeFrame.DAY1),
    TimeFrame(TimeFrameKind.LIMITED, LimitedTimeFrame.DAY7),
    TimeFrame(TimeFrameKind.LIMITED, LimitedTimeFrame.DAY30),
    TimeFrame(TimeFrameKind.SINCE_BURN),
    TimeFrame(TimeFrameKind.SINCE_MERGE),
)


def time_frames() -> Iterator[TimeFrame]:
    """All time frames, shortest limited ones first."""
    return iter(_TIME_FRAMES)