# ethsupply

Tools for tracking the supply of ETH and the data around it:

- exact amount types for ETH, Gwei and Wei, with checked arithmetic and the
  JSON forms that dashboards expect (`ethsupply.units`);
- named time frames (`m5`, `h1`, `d1`, `d7`, `d30`, `all`, `since-merge`)
  (`ethsupply.time_frames`);
- a JSON key/value store kept in SQLite (`ethsupply.key_value_store`);
- recording of the ETH/USD price minute by minute from Bybit's one-minute
  index candles, with tools to resync and fill gaps in the history
  (`ethsupply.usd_price`);
- a small HTTP server that serves the values in the key/value store as JSON,
  with ETag and Cache-Control headers (`ethsupply.serve`).

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Commands

| Command | What it does |
| --- | --- |
| `ethsupply-serve` | Serves the cached values as a JSON API. |
| `ethsupply-record-eth-price` | Fetches the latest ETH/USD price every ten seconds, stores it when it changed and updates the `eth-price-stats` value. |
| `ethsupply-resync-eth-prices` | Refetches every minute's price since the London hard fork, checkpointing every 100 minutes and resuming from the last checkpoint. |
| `ethsupply-heal-eth-prices` | Looks for minutes since the London hard fork without a stored price and fills them in. |

All commands use a SQLite database, given with `--database` or the
`ETH_ANALYSIS_DATABASE` environment variable (default
`eth-analysis.sqlite3`). The log level is read from `LOG_LEVEL` (default
`INFO`).

`ethsupply-resync-eth-prices` and `ethsupply-heal-eth-prices` take one
optional argument: how many minutes away from the target minute a price may
be and still be used. It defaults to 10, also when the argument is not a
whole number.

```
ethsupply-heal-eth-prices 5
```

`ethsupply-record-eth-price` starts from the most recent stored price, so the
database must hold at least one; it also needs a stored price within ten
minutes of 24 hours ago to compute the 24-hour change.
`ethsupply-heal-eth-prices` stops with an error on a database that holds no
prices.

### The server

`ethsupply-serve` loads every cached value from the key/value store, then
serves them under `/api/v2/fees/…` (for example
`/api/v2/fees/eth-price-stats`, `/api/v2/fees/supply-parts`,
`/api/v2/fees/validator-rewards`; the full list is `ROUTES` in
`ethsupply.serve`). A key with no stored value answers 503. Responses carry
`Cache-Control: public, max-age=6, stale-while-revalidate=120` and a strong
ETag; a request whose `If-None-Match` matches it gets 304. `/healthz` and
`/api/v2/fees/healthz` answer 200 when the database can be queried.

Options: `--port` (default from `PORT`, else 3002) and `--refresh-interval`,
the seconds between reloads of all values from the store (default 2).

## Library use

Amounts:

```python
from ethsupply.units import EthNewtype, GweiNewtype, parse_wei

GweiNewtype(1) + GweiNewtype(1)                 # GweiNewtype(amount=2)
EthNewtype(1.5).to_gwei()                       # GweiNewtype(amount=1500000000)
parse_wei("1000000000000000000").to_eth()       # EthNewtype(amount=1.0)
```

Gwei amounts stay within a signed 64-bit integer and Wei amounts within a
signed 128-bit one; arithmetic that leaves the range raises `OverflowError`
rather than wrapping. `gwei_from_json` accepts an integer or a string of
digits; `wei_from_json` accepts only a string.

Time frames:

```python
from ethsupply.time_frames import parse_time_frame, time_frames

frame = parse_time_frame("d7")
frame.to_db_key()                     # "d7"
list(time_frames())                   # m5, h1, d1, d7, d30, all, since-merge
```

An unknown name raises `ParseTimeFrameError`.

Closest price lookup:

```python
from ethsupply.usd_price.bybit import find_closest_price

closest = find_closest_price(prices, target)
```

`prices` must be ordered oldest first; when two prices are equally close to the
target, the older one wins.

## What this package does not do

- Only the `eth-price-stats` value is written by this package. The other
  values the server offers (supply parts, supply over time, issuance,
  validator rewards and so on) are served if something else has stored them
  in the key/value store; nothing here computes them, and until they are
  stored their routes answer 503.
- There is no monitor that checks whether the dashboards are still updating
  and raises an alarm.
- Storage is a local SQLite file; there is no other database backend and no
  push notification of changed values, so the server polls the store.