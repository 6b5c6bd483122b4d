"""Storage of ETH/USD prices by minute."""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from ethsupply import key_value_store

RESYNC_ETH_PRICES_KEY = "resync-eth-prices"

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_MICROSECOND = timedelta(microseconds=1)
_U32_MAX = 2**32 - 1


def _to_micros(timestamp: datetime) -> int:
    if timestamp.tzinfo is None:
        raise ValueError("timestamps must be timezone aware")
    return (timestamp - _EPOCH) // _MICROSECOND


def _from_micros(micros: int) -> datetime:
    return _EPOCH + timedelta(microseconds=micros)


def _format_timestamp(timestamp: datetime) -> str:
    utc = timestamp.astimezone(timezone.utc)
    base = utc.strftime("%Y-%m-%dT%H:%M:%S")
    micros = utc.microsecond
    if micros == 0:
        fraction = ""
    elif micros % 1000 == 0:
        fraction = f".{micros // 1000:03d}"
    else:
        fraction = f".{micros:06d}"
    return f"{base}{fraction}Z"


@dataclass(frozen=True)
class EthPrice:
    """The USD price of one ETH at a given minute."""

    timestamp: datetime
    usd: float


@dataclass(frozen=True)
class EthPriceStats:
    """The latest price together with its change over the last 24 hours."""

    timestamp: datetime
    usd: float
    h24_change: float

    def to_json(self) -> dict[str, Any]:
        return {
            "timestamp": _format_timestamp(self.timestamp),
            "usd": self.usd,
            "h24Change": self.h24_change,
        }


class GetEthPriceError(Exception):
    """Raised when no usable price exists for a block."""


class PriceTooOldError(GetEthPriceError):
    def __init__(self) -> None:
        super().__init__("closest price to given block was more than 5min away")


def ensure_schema(connection: sqlite3.Connection) -> None:
    """Create the price table, and the key/value table it checkpoints into."""
    key_value_store.ensure_schema(connection)
    with connection:
        connection.execute(
            "CREATE TABLE IF NOT EXISTS eth_prices ("
            " timestamp INTEGER PRIMARY KEY,"
            " ethusd REAL NOT NULL"
            ")"
        )


def _row_to_price(row: tuple[int, float]) -> EthPrice:
    return EthPrice(timestamp=_from_micros(row[0]), usd=row[1])


def store_price(connection: sqlite3.Connection, timestamp: datetime, usd: float) -> None:
    """Insert a price, replacing any price already stored for that timestamp."""
    with connection:
        connection.execute(
            "INSERT INTO eth_prices (timestamp, ethusd) VALUES (?, ?)"
            " ON CONFLICT (timestamp) DO UPDATE SET ethusd = excluded.ethusd",
            (_to_micros(timestamp), float(usd)),
        )


def get_most_recent_price(connection: sqlite3.Connection) -> EthPrice:
    row = connection.execute(
        "SELECT timestamp, ethusd FROM eth_prices ORDER BY timestamp DESC LIMIT 1"
    ).fetchone()
    if row is None:
        raise LookupError("no eth prices stored")
    return _row_to_price(row)


def get_h24_average(connection: sqlite3.Connection, now: datetime | None = None) -> float:
    """Average price over the 24 hours before ``now``."""
    now = now or datetime.now(timezone.utc)
    since = _to_micros(now - timedelta(hours=24))
    (average,) = connection.execute(
        "SELECT AVG(ethusd) FROM eth_prices WHERE timestamp >= ?", (since,)
    ).fetchone()
    if average is None:
        raise LookupError("no eth prices stored in the last 24 hours")
    return average


def get_price_h24_ago(
    connection: sqlite3.Connection,
    age_limit: timedelta,
    now: datetime | None = None,
) -> EthPrice | None:
    """The price closest to 24 hours ago, if one lies within ``age_limit`` of it."""
    now = now or datetime.now(timezone.utc)
    target = _to_micros(now - timedelta(hours=24))
    limit = age_limit // _MICROSECOND
    row = connection.execute(
        "SELECT timestamp, ethusd FROM eth_prices"
        " WHERE ABS(timestamp - ?) <= ?"
        " ORDER BY ABS(timestamp - ?) ASC, timestamp ASC"
        " LIMIT 1",
        (target, limit, target),
    ).fetchone()
    return None if row is None else _row_to_price(row)


def calc_h24_change(current_price: EthPrice, price_h24_ago: EthPrice) -> float:
    return (current_price.usd - price_h24_ago.usd) / price_h24_ago.usd


def _decode_minute(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= _U32_MAX:
        raise ValueError(f"last synced minute must be an unsigned 32-bit int, got {value!r}")
    return value


def get_last_synced_minute(connection: sqlite3.Connection) -> int | None:
    return key_value_store.get_deserializable_value(
        connection, RESYNC_ETH_PRICES_KEY, _decode_minute
    )


def set_last_synced_minute(connection: sqlite3.Connection, minute: int) -> None:
    key_value_store.set_value(connection, RESYNC_ETH_PRICES_KEY, _decode_minute(minute))


def get_eth_price_by_block(connection: sqlite3.Connection, block_timestamp: datetime) -> float:
    """The stored price closest to a block's timestamp, if recent enough."""
    target = _to_micros(block_timestamp)
    row = connection.execute(
        "SELECT timestamp, ethusd FROM eth_prices"
        " ORDER BY ABS(timestamp - ?) ASC, timestamp ASC LIMIT 1",
        (target,),
    ).fetchone()
    if row is None:
        raise LookupError("no eth prices stored")
    price = _row_to_price(row)
    if block_timestamp - price.timestamp <= timedelta(minutes=20):
        return price.usd
    raise PriceTooOldError()