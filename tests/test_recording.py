import sqlite3
from datetime import datetime, timedelta, timezone

import pytest

from ethsupply import key_value_store
from ethsupply.usd_price import store
from ethsupply.usd_price.recording import (
    ETH_PRICE_CACHE_KEY,
    LONDON_HARD_FORK_TIMESTAMP,
    heal_eth_prices,
    london_minute_timestamp,
    minutes_since_london,
    missing_minutes,
    update_eth_price_with_most_recent,
)
from ethsupply.usd_price.store import EthPrice

NOW = datetime(2023, 3, 1, 12, 0, tzinfo=timezone.utc)


class _FakeResponse:
    def __init__(self, body):
        self._body = body

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return False

    async def json(self, content_type=None):
        return self._body


class _FakeSession:
    def __init__(self, body):
        self.body = body
        self.calls = []

    def get(self, url, params=None):
        self.calls.append((url, params))
        return _FakeResponse(self.body)


def _body_for(moment, usd):
    millis = str(int(moment.timestamp() * 1000))
    return {"result": {"list": [[millis, usd, usd, usd, usd]]}}


@pytest.fixture
def connection():
    conn = sqlite3.connect(":memory:")
    store.ensure_schema(conn)
    yield conn
    conn.close()


def test_london_minute_is_whole_minute_near_fork():
    minute = london_minute_timestamp()
    assert minute % 60 == 0
    assert abs(minute - LONDON_HARD_FORK_TIMESTAMP.timestamp()) <= 30
    assert minute == int(datetime(2021, 8, 5, 12, 34, tzinfo=timezone.utc).timestamp())


def test_minutes_since_london_at_fork_is_zero():
    assert minutes_since_london(LONDON_HARD_FORK_TIMESTAMP) == 0


def test_minutes_since_london_counts_hours():
    assert minutes_since_london(LONDON_HARD_FORK_TIMESTAMP + timedelta(hours=1)) == 60


def test_minutes_since_london_grows_with_time():
    earlier = minutes_since_london(NOW)
    later = minutes_since_london(NOW + timedelta(minutes=5))
    assert later - earlier == 5


def test_missing_minutes_skips_known():
    london = london_minute_timestamp()
    known = {london, london + 120}
    result = [int(m.timestamp()) for m in missing_minutes(known, 0, 4)]
    assert result == [london + 60, london + 180]


def test_missing_minutes_respects_start():
    london = london_minute_timestamp()
    result = [int(m.timestamp()) for m in missing_minutes(set(), 2, 4)]
    assert result == [london + 120, london + 180]


def test_missing_minutes_empty_range():
    assert list(missing_minutes(set(), 5, 5)) == []


@pytest.mark.asyncio
async def test_update_stores_new_price_and_stats(connection):
    h24_price = EthPrice(timestamp=NOW - timedelta(hours=24), usd=1000.0)
    store.store_price(connection, h24_price.timestamp, h24_price.usd)
    session = _FakeSession(_body_for(NOW, "2000.0"))
    last_price = EthPrice(timestamp=NOW - timedelta(minutes=10), usd=1.0)

    result = await update_eth_price_with_most_recent(connection, last_price, session, NOW)

    assert result == EthPrice(timestamp=NOW, usd=2000.0)
    assert store.get_most_recent_price(connection) == result
    stats = key_value_store.get_value(connection, ETH_PRICE_CACHE_KEY)
    assert stats["usd"] == 2000.0
    assert stats["h24Change"] == store.calc_h24_change(result, h24_price)
    assert len(session.calls) == 1


@pytest.mark.asyncio
async def test_update_skips_equal_price(connection):
    session = _FakeSession(_body_for(NOW, "1500.0"))
    last_price = EthPrice(timestamp=NOW, usd=1500.0)

    result = await update_eth_price_with_most_recent(connection, last_price, session, NOW)

    assert result == last_price
    with pytest.raises(LookupError):
        store.get_most_recent_price(connection)


@pytest.mark.asyncio
async def test_update_without_h24_price_raises(connection):
    session = _FakeSession(_body_for(NOW, "1500.0"))
    last_price = EthPrice(timestamp=NOW - timedelta(minutes=1), usd=1400.0)

    with pytest.raises(LookupError, match="24h old price"):
        await update_eth_price_with_most_recent(connection, last_price, session, NOW)


def test_heal_on_empty_database_raises(tmp_path):
    database = tmp_path / "prices.sqlite3"
    with pytest.raises(LookupError, match="no eth prices found"):
        heal_eth_prices(["--database", str(database)])