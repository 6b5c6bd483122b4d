from datetime import timedelta

import pytest

from ethsupply.time_frames import (
    LimitedTimeFrame,
    ParseTimeFrameError,
    PgInterval,
    TimeFrame,
    TimeFrameKind,
    parse_limited_time_frame,
    parse_time_frame,
    time_frames,
)


def limited(frame):
    return TimeFrame(TimeFrameKind.LIMITED, frame)


def test_time_frame_iter():
    expected = [
        limited(LimitedTimeFrame.MINUTE5),
        limited(LimitedTimeFrame.HOUR1),
        limited(LimitedTimeFrame.DAY1),
        limited(LimitedTimeFrame.DAY7),
        limited(LimitedTimeFrame.DAY30),
        TimeFrame(TimeFrameKind.SINCE_BURN),
        TimeFrame(TimeFrameKind.SINCE_MERGE),
    ]
    assert list(time_frames()) == expected


def test_parse():
    assert parse_time_frame("all") == TimeFrame(TimeFrameKind.SINCE_BURN)
    assert parse_time_frame("d30") == limited(LimitedTimeFrame.DAY30)


def test_parse_since_merge():
    assert parse_time_frame("since-merge") == TimeFrame(TimeFrameKind.SINCE_MERGE)


def test_to_db_key():
    assert TimeFrame(TimeFrameKind.SINCE_BURN).to_db_key() == "all"
    assert limited(LimitedTimeFrame.DAY1).to_db_key() == "d1"


@pytest.mark.parametrize("frame", list(LimitedTimeFrame))
def test_limited_str_round_trip(frame):
    assert parse_limited_time_frame(str(frame)) is frame


@pytest.mark.parametrize("text", ["d2", "", "ALL", "week"])
def test_parse_unknown(text):
    with pytest.raises(ParseTimeFrameError) as info:
        parse_time_frame(text)
    assert info.value.time_frame == text
    assert str(info.value) == f"failed to parse time frame {text}"


def test_durations():
    assert LimitedTimeFrame.HOUR1.duration() == timedelta(hours=1)
    assert LimitedTimeFrame.DAY30.duration() == timedelta(days=30)


def test_epoch_count():
    assert LimitedTimeFrame.DAY1.epoch_count() == 225.0
    assert LimitedTimeFrame.MINUTE5.epoch_count() == 0.78125


def test_epoch_counts_scale_with_duration():
    per_second = LimitedTimeFrame.DAY1.epoch_count() / LimitedTimeFrame.DAY1.duration().total_seconds()
    for frame in LimitedTimeFrame:
        assert frame.epoch_count() == pytest.approx(per_second * frame.duration().total_seconds())


def test_postgres_interval_days():
    assert LimitedTimeFrame.DAY7.postgres_interval() == PgInterval(months=0, days=7, microseconds=0)


@pytest.mark.parametrize("frame", [LimitedTimeFrame.HOUR1, LimitedTimeFrame.MINUTE5])
def test_postgres_interval_microseconds_match_duration(frame):
    interval = frame.postgres_interval()
    assert interval.days == 0
    assert interval.microseconds == frame.duration() // timedelta(microseconds=1)


def test_limited_kind_requires_frame():
    with pytest.raises(ValueError):
        TimeFrame(TimeFrameKind.LIMITED)