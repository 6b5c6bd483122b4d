import sqlite3
from datetime import datetime, timedelta, timezone

import pytest

from ethsupply.usd_price.store import (
    EthPrice,
    EthPriceStats,
    GetEthPriceError,
    PriceTooOldError,
    calc_h24_change,
    ensure_schema,
    get_eth_price_by_block,
    get_h24_average,
    get_last_synced_minute,
    get_most_recent_price,
    get_price_h24_ago,
    set_last_synced_minute,
    store_price,
)


def _now():
    return datetime.now(timezone.utc).replace(microsecond=0)


@pytest.fixture
def connection():
    conn = sqlite3.connect(":memory:")
    ensure_schema(conn)
    yield conn
    conn.close()


def test_store_price(connection):
    test_price = EthPrice(timestamp=_now(), usd=0.0)
    store_price(connection, test_price.timestamp, test_price.usd)
    assert get_most_recent_price(connection) == test_price


def test_get_most_recent_price(connection):
    now = _now()
    price_1 = EthPrice(timestamp=now - timedelta(seconds=10), usd=0.0)
    price_2 = EthPrice(timestamp=now, usd=1.0)
    store_price(connection, price_1.timestamp, price_1.usd)
    store_price(connection, price_2.timestamp, price_2.usd)
    assert get_most_recent_price(connection) == price_2


def test_most_recent_price_empty_raises(connection):
    with pytest.raises(LookupError):
        get_most_recent_price(connection)


def test_store_price_overwrites_same_minute(connection):
    now = _now()
    store_price(connection, now, 1.0)
    store_price(connection, now, 2.0)
    assert get_most_recent_price(connection) == EthPrice(timestamp=now, usd=2.0)


def test_get_h24_average(connection):
    now = datetime.now(timezone.utc)
    store_price(connection, now - timedelta(hours=23), 10.0)
    store_price(connection, now, 20.0)
    assert get_h24_average(connection, now) == 15.0


def test_get_price_h24_ago(connection):
    now = _now()
    test_price = EthPrice(timestamp=now - timedelta(hours=24), usd=0.0)
    store_price(connection, test_price.timestamp, test_price.usd)
    assert get_price_h24_ago(connection, timedelta(minutes=10), now) == test_price


def test_get_price_h24_ago_limit(connection):
    now = _now()
    store_price(connection, now - timedelta(hours=25), 0.0)
    assert get_price_h24_ago(connection, timedelta(minutes=10), now) is None


def test_calc_h24_change():
    now = _now()
    current = EthPrice(timestamp=now, usd=150.0)
    past = EthPrice(timestamp=now - timedelta(hours=24), usd=100.0)
    assert calc_h24_change(current, past) == 0.5
    assert calc_h24_change(past, past) == 0.0


def test_eth_price_stats_to_json():
    stats = EthPriceStats(
        timestamp=datetime(2021, 1, 1, tzinfo=timezone.utc), usd=4134.16, h24_change=0.5
    )
    assert stats.to_json() == {
        "timestamp": "2021-01-01T00:00:00Z",
        "usd": 4134.16,
        "h24Change": 0.5,
    }


def test_get_set_last_synced_minute(connection):
    assert get_last_synced_minute(connection) is None
    set_last_synced_minute(connection, 1559)
    assert get_last_synced_minute(connection) == 1559


def test_set_last_synced_minute_rejects_negative(connection):
    with pytest.raises(ValueError):
        set_last_synced_minute(connection, -1)


def test_insert_get_eth_price(connection):
    now = datetime.now(timezone.utc)
    store_price(connection, now, 5.2)
    assert get_eth_price_by_block(connection, now) == 5.2


def test_get_eth_price_too_old(connection):
    now = datetime.now(timezone.utc)
    store_price(connection, now - timedelta(minutes=21), 5.2)
    with pytest.raises(PriceTooOldError):
        get_eth_price_by_block(connection, now)
    with pytest.raises(GetEthPriceError):
        get_eth_price_by_block(connection, now)


def test_get_eth_price_old_block(connection):
    now = datetime.now(timezone.utc)
    store_price(connection, now - timedelta(minutes=6), 4.0)
    assert get_eth_price_by_block(connection, now - timedelta(minutes=10)) == 4.0


def test_naive_timestamp_rejected(connection):
    with pytest.raises(ValueError):
        store_price(connection, datetime(2021, 1, 1), 1.0)