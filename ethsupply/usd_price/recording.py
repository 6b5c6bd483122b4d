"""Recording, resyncing and healing of the stored ETH/USD price history."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sqlite3
import time
from datetime import datetime, timedelta, timezone
from typing import Iterable, Iterator, NoReturn

import aiohttp

from ethsupply import key_value_store
from ethsupply.usd_price import bybit, store
from ethsupply.usd_price.store import EthPrice, EthPriceStats

logger = logging.getLogger(__name__)

LONDON_HARD_FORK_TIMESTAMP = datetime(2021, 8, 5, 12, 33, 42, tzinfo=timezone.utc)
ETH_PRICE_CACHE_KEY = "eth-price-stats"
DEFAULT_MAX_DISTANCE_MINUTES = 10
RECORD_INTERVAL_SECONDS = 10
CHECKPOINT_EVERY_MINUTES = 100

_DATABASE_ENV = "ETH_ANALYSIS_DATABASE"
_DEFAULT_DATABASE = "eth-analysis.sqlite3"
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_MINUTE_MICROS = 60_000_000


def _round_to_minute(moment: datetime) -> datetime:
    """Round to the nearest whole minute; a tie rounds up."""
    micros = (moment - _EPOCH) // timedelta(microseconds=1)
    down = micros % _MINUTE_MICROS
    if down == 0:
        return moment
    up = _MINUTE_MICROS - down
    if up <= down:
        return moment + timedelta(microseconds=up)
    return moment - timedelta(microseconds=down)


def london_minute_timestamp() -> int:
    """Unix seconds of the minute nearest to the London hard fork."""
    return int(_round_to_minute(LONDON_HARD_FORK_TIMESTAMP).timestamp())


def minutes_since_london(now: datetime | None = None) -> int:
    """Whole minutes between the London hard fork and ``now`` rounded to its minute."""
    now = now or datetime.now(timezone.utc)
    elapsed = _round_to_minute(now) - LONDON_HARD_FORK_TIMESTAMP
    seconds = elapsed // timedelta(seconds=1)
    minutes = abs(seconds) // 60
    return minutes if seconds >= 0 else -minutes


def missing_minutes(
    known_minutes: Iterable[int], start_minute: int, minute_count: int
) -> Iterator[datetime]:
    """Minutes after London, from ``start_minute`` up to ``minute_count``, not in ``known_minutes``."""
    known = set(known_minutes)
    london = london_minute_timestamp()
    for minute_n in range(start_minute, minute_count):
        timestamp = london + minute_n * 60
        if timestamp not in known:
            yield datetime.fromtimestamp(timestamp, timezone.utc)


async def update_eth_price_with_most_recent(
    connection: sqlite3.Connection,
    last_price: EthPrice,
    session: aiohttp.ClientSession,
    now: datetime | None = None,
) -> EthPrice:
    """Store the latest price if it changed and refresh the price stats; return the latest price."""
    most_recent_price = await bybit.get_eth_price(session)
    if most_recent_price == last_price:
        logger.debug(
            "most recent eth price is equal to last stored price, skipping, price=%s minute=%s",
            last_price.usd,
            last_price.timestamp,
        )
        return last_price

    if most_recent_price.timestamp == last_price.timestamp:
        logger.debug(
            "found more recent price for existing minute, minute=%s last_price=%s most_recent_price=%s",
            last_price.timestamp,
            last_price.usd,
            most_recent_price.usd,
        )
    else:
        logger.debug(
            "new most recent price, timestamp=%s price=%s",
            most_recent_price.timestamp,
            most_recent_price.usd,
        )

    store.store_price(connection, most_recent_price.timestamp, most_recent_price.usd)

    price_h24_ago = store.get_price_h24_ago(connection, timedelta(minutes=10), now)
    if price_h24_ago is None:
        raise LookupError("24h old price should be available within 10min of now - 24h")

    stats = EthPriceStats(
        timestamp=most_recent_price.timestamp,
        usd=most_recent_price.usd,
        h24_change=store.calc_h24_change(most_recent_price, price_h24_ago),
    )
    key_value_store.set_serializable_value(connection, ETH_PRICE_CACHE_KEY, stats)
    return most_recent_price


def _init_logging() -> None:
    level = os.environ.get("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(level=getattr(logging, level, logging.INFO))


def _parse_args(argv: list[str] | None, prog: str, with_distance: bool) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog=prog)
    if with_distance:
        parser.add_argument(
            "max_distance",
            nargs="?",
            default=None,
            help="maximum distance in minutes to a usable price (default 10)",
        )
    parser.add_argument(
        "--database",
        default=os.environ.get(_DATABASE_ENV, _DEFAULT_DATABASE),
        help="path of the SQLite database",
    )
    return parser.parse_args(argv)


def _max_distance(value: str | None) -> timedelta:
    try:
        minutes = int(value) if value is not None else DEFAULT_MAX_DISTANCE_MINUTES
    except ValueError:
        minutes = DEFAULT_MAX_DISTANCE_MINUTES
    return timedelta(minutes=minutes)


def _open(database: str) -> sqlite3.Connection:
    connection = sqlite3.connect(database)
    store.ensure_schema(connection)
    return connection


def _known_minutes(connection: sqlite3.Connection) -> set[int]:
    rows = connection.execute("SELECT timestamp FROM eth_prices").fetchall()
    return {micros // 1_000_000 for (micros,) in rows}


async def _record(connection: sqlite3.Connection) -> NoReturn:
    last_price = store.get_most_recent_price(connection)
    async with aiohttp.ClientSession() as session:
        while True:
            last_price = await update_eth_price_with_most_recent(connection, last_price, session)
            await asyncio.sleep(RECORD_INTERVAL_SECONDS)


def record_eth_price(argv: list[str] | None = None) -> None:
    """Record the current ETH price every ten seconds, forever."""
    args = _parse_args(argv, "record-eth-price", with_distance=False)
    _init_logging()
    logger.info("recording eth prices")
    connection = _open(args.database)
    try:
        asyncio.run(_record(connection))
    finally:
        connection.close()


def _progress_string(done: int, total: int, started: float) -> str:
    percent = 100.0 if total == 0 else done / total * 100
    elapsed = time.monotonic() - started
    rate = done / elapsed if elapsed > 0 else 0.0
    return f"resync eth prices: {done}/{total} ({percent:.2f}%), {rate:.2f} minutes/s"


async def _resync(connection: sqlite3.Connection, max_distance: timedelta) -> None:
    minute_count = minutes_since_london()
    if minute_count < 0:
        raise ValueError("current time lies before the London hard fork")
    london = london_minute_timestamp()

    last_synced = store.get_last_synced_minute(connection)
    start_minute = 0 if last_synced is None else last_synced + 1
    logger.debug(
        "starting at %s",
        datetime.fromtimestamp(london, timezone.utc) + timedelta(minutes=start_minute),
    )

    total = max(minute_count - start_minute, 0)
    done = 0
    started = time.monotonic()
    async with aiohttp.ClientSession() as session:
        for minute_n in range(start_minute, minute_count):
            moment = datetime.fromtimestamp(london + minute_n * 60, timezone.utc)
            usd = await bybit.get_closest_price_by_minute(session, moment, max_distance)
            if usd is None:
                logger.debug("no Bybit price available, timestamp=%s", moment)
            else:
                store.store_price(connection, moment, usd)
            done += 1

            if minute_n != 0 and minute_n % CHECKPOINT_EVERY_MINUTES == 0:
                logger.debug("100 minutes synced, checkpointing, timestamp=%s", moment)
                store.set_last_synced_minute(connection, minute_n)
                logger.info("%s", _progress_string(done, total, started))


def resync_all(argv: list[str] | None = None) -> None:
    """Refetch the price of every minute since the London hard fork, resuming from checkpoints."""
    args = _parse_args(argv, "resync-all-prices", with_distance=True)
    _init_logging()
    logger.info("resyncing all eth prices")
    connection = _open(args.database)
    try:
        asyncio.run(_resync(connection, _max_distance(args.max_distance)))
    finally:
        connection.close()


async def _heal(connection: sqlite3.Connection, max_distance: timedelta) -> None:
    logger.debug("getting all eth prices")
    known = _known_minutes(connection)
    if not known:
        raise LookupError("no eth prices found, are you running against a DB with prices?")

    logger.debug("walking through all minutes since London hardfork to look for missing minutes")
    async with aiohttp.ClientSession() as session:
        for moment in missing_minutes(known, 0, minutes_since_london()):
            logger.debug("missing minute, minute=%s", moment)
            usd = await bybit.get_closest_price_by_minute(session, moment, max_distance)
            if usd is None:
                logger.debug("no Bybit price available, timestamp=%s", moment)
            else:
                logger.debug("found a price on Bybit, adding it to the DB")
                store.store_price(connection, moment, usd)


def heal_eth_prices(argv: list[str] | None = None) -> None:
    """Fill in prices for minutes since the London hard fork that have none stored."""
    args = _parse_args(argv, "heal-eth-prices", with_distance=True)
    _init_logging()
    logger.info("healing missing eth prices")
    connection = _open(args.database)
    try:
        asyncio.run(_heal(connection, _max_distance(args.max_distance)))
    finally:
        connection.close()
    logger.info("done healing eth prices")