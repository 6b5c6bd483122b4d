import time

from ethsupply.timestamps import get_timestamp


def test_get_timestamp():
    assert get_timestamp() > 1655815544


def test_get_timestamp_tracks_clock():
    before = int(time.time())
    timestamp = get_timestamp()
    after = int(time.time())
    assert before <= timestamp <= after