"""ETH/USD index prices from Bybit's one-minute candles."""

from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone
from typing import Any, Sequence

import aiohttp

from ethsupply.usd_price.store import EthPrice

BYBIT_API = "https://api.bybit.com"
_KLINE_PATH = "/derivatives/v3/public/index-price-kline"
_CANDLE_SHAPE = "expecting [<timestamp>, <usd>, <high>, <low>, <close>] array"


def _millis(timestamp: datetime) -> int:
    return math.floor(timestamp.timestamp() * 1000)


def _parse_candle(candle: Any) -> EthPrice:
    if not isinstance(candle, list) or len(candle) != 5:
        raise ValueError(_CANDLE_SHAPE)
    if not all(isinstance(part, str) for part in candle):
        raise ValueError(_CANDLE_SHAPE)
    timestamp_ms, usd = int(candle[0]), float(candle[1])
    timestamp = datetime.fromtimestamp(0, timezone.utc) + timedelta(milliseconds=timestamp_ms)
    return EthPrice(timestamp=timestamp, usd=usd)


def parse_candles(body: Any) -> list[EthPrice]:
    """Turn a kline response body into prices, oldest first."""
    try:
        candles = body["result"]["list"]
    except (KeyError, TypeError) as error:
        raise ValueError(f"unexpected bybit response: {body!r}") from error
    if not isinstance(candles, list):
        raise ValueError(f"unexpected bybit response: {body!r}")
    # Bybit lists newest first.
    return [_parse_candle(candle) for candle in reversed(candles)]


async def get_eth_candles(
    session: aiohttp.ClientSession, start: datetime, end: datetime
) -> list[EthPrice]:
    """One-minute index candles between start and end, both inclusive."""
    params = {
        "category": "inverse",
        "symbol": "ETHUSD",
        "interval": "1",
        "start": str(_millis(start)),
        "end": str(_millis(end)),
    }
    async with session.get(BYBIT_API + _KLINE_PATH, params=params) as response:
        body = await response.json(content_type=None)
    return parse_candles(body)


async def get_eth_price(session: aiohttp.ClientSession) -> EthPrice:
    """The open price of the current, in-progress, one-minute candle."""
    end = datetime.now(timezone.utc)
    start = end - timedelta(minutes=1)
    candles = await get_eth_candles(session, start, end)
    if not candles:
        raise LookupError("bybit returned no candles for the last minute")
    return candles[-1]


def find_closest_price(prices: Sequence[EthPrice], target: datetime) -> EthPrice:
    """The price nearest to target; on a tie the older price wins."""
    best: EthPrice | None = None
    best_distance: int | None = None
    for price in prices:
        distance = abs(math.trunc((target - price.timestamp).total_seconds()))
        if best_distance is None or distance < best_distance:
            best, best_distance = price, distance
        elif distance > best_distance:
            # Prices are ordered oldest first, so they only get further away.
            break
    if best is None:
        raise ValueError("cannot find the closest price among no prices")
    return best


async def get_closest_price_by_minute(
    session: aiohttp.ClientSession, target: datetime, max_distance: timedelta
) -> float | None:
    """USD price closest to target within max_distance, or None when there is none."""
    candles = await get_eth_candles(session, target - max_distance, target + max_distance)
    if not candles:
        return None
    return find_closest_price(candles, target).usd