"""HTTP API that serves cached analysis values with ETags."""

from __future__ import annotations

import argparse
import asyncio
import hashlib
import json
import logging
import os
import re
import sqlite3
from typing import Any, AsyncIterator, Iterable, Mapping

from aiohttp import web

from ethsupply import key_value_store
from ethsupply.usd_price.recording import ETH_PRICE_CACHE_KEY

logger = logging.getLogger(__name__)

DEFAULT_PORT = 3002
DEFAULT_MAX_AGE = 6
DEFAULT_STALE_WHILE_REVALIDATE = 120
DEFAULT_REFRESH_INTERVAL_SECONDS = 2.0

_DATABASE_ENV = "ETH_ANALYSIS_DATABASE"
_DEFAULT_DATABASE = "eth-analysis.sqlite3"

CACHE_KEYS: tuple[str, ...] = (
    "base-fee-over-time",
    "base-fee-per-gas",
    "base-fee-per-gas-stats",
    "block-lag",
    "effective-balance-sum",
    ETH_PRICE_CACHE_KEY,
    "supply-parts",
    "issuance-breakdown",
    "issuance-estimate",
    "supply-changes",
    "supply-dashboard-analysis",
    "supply-over-time",
    "supply-projection-inputs",
    "supply-since-merge",
    "total-difficulty-progress",
    "validator-rewards",
)

ROUTES: dict[str, str] = {
    "/api/v2/fees/base-fee-over-time": "base-fee-over-time",
    "/api/v2/fees/base-fee-per-gas": "base-fee-per-gas",
    "/api/v2/fees/base-fee-per-gas-stats": "base-fee-per-gas-stats",
    "/api/v2/fees/block-lag": "block-lag",
    "/api/v2/fees/effective-balance-sum": "effective-balance-sum",
    "/api/v2/fees/eth-price-stats": ETH_PRICE_CACHE_KEY,
    # Deprecated, kept until the frontend uses supply-parts.
    "/api/v2/fees/eth-supply-parts": "supply-parts",
    "/api/v2/fees/issuance-estimate": "issuance-estimate",
    "/api/v2/fees/supply-changes": "supply-changes",
    "/api/v2/fees/supply-dashboard-analysis": "supply-dashboard-analysis",
    "/api/v2/fees/supply-over-time": "supply-over-time",
    "/api/v2/fees/supply-parts": "supply-parts",
    "/api/v2/fees/supply-projection-inputs": "supply-projection-inputs",
    "/api/v2/fees/supply-since-merge": "supply-since-merge",
    "/api/v2/fees/total-difficulty-progress": "total-difficulty-progress",
    "/api/v2/fees/validator-rewards": "validator-rewards",
}

HEALTH_ROUTES: tuple[str, ...] = ("/api/v2/fees/healthz", "/healthz")

_ENTITY_TAG = re.compile(r'(W/)?"([\x21\x23-\x7e\x80-\U0010ffff]*)"')


class Cache:
    """In-memory copies of the cached values stored in the key/value store."""

    def __init__(self, keys: Iterable[str] = CACHE_KEYS) -> None:
        self._values: dict[str, Any] = {key: None for key in keys}

    def __contains__(self, key: object) -> bool:
        return key in self._values

    def get(self, key: str) -> Any:
        """The cached value for ``key``, or None when nothing is stored yet."""
        if key not in self._values:
            raise KeyError(f"unknown cache key: {key}")
        return self._values[key]

    def update_from_store(self, connection: sqlite3.Connection, key: str) -> bool:
        """Reload one key from the store; unknown keys are skipped and give False."""
        if key not in self._values:
            logger.debug("unsupported cache update, skipping, cache_key=%s", key)
            return False
        logger.debug("cache update, cache_key=%s", key)
        self._values[key] = key_value_store.get_value(connection, key)
        return True

    def refresh(self, connection: sqlite3.Connection) -> None:
        """Reload every key from the store."""
        for key in self._values:
            self.update_from_store(connection, key)


def cache_control_header(
    max_age: int | None = None, stale_while_revalidate: int | None = None
) -> str:
    max_age = DEFAULT_MAX_AGE if max_age is None else max_age
    stale = DEFAULT_STALE_WHILE_REVALIDATE if stale_while_revalidate is None else stale_while_revalidate
    return f"public, max-age={max_age}, stale-while-revalidate={stale}"


def compute_etag(body: bytes) -> str:
    """A strong entity tag derived from the body's length and digest."""
    digest = hashlib.sha1(body).hexdigest()[:16]
    return f'"{len(body):x}-{digest}"'


def _parse_entity_tag(text: str) -> tuple[bool, str]:
    match = _ENTITY_TAG.fullmatch(text.strip())
    if match is None:
        raise ValueError(f"invalid entity tag: {text!r}")
    return match.group(1) is not None, match.group(2)


def apply_etag(
    status: int,
    headers: Mapping[str, str],
    body: bytes,
    if_none_match: str | None,
) -> tuple[int, dict[str, str], bytes]:
    """Add an ETag to a response with a body, answering 304 on a strong match."""
    out_headers = dict(headers)
    if not body:
        return status, out_headers, body

    etag = compute_etag(body)
    out_headers["ETag"] = etag
    if if_none_match is None:
        return status, out_headers, body

    try:
        requested_weak, requested_tag = _parse_entity_tag(if_none_match)
    except ValueError as error:
        logger.error("%s", error)
        return status, out_headers, body

    _, own_tag = _parse_entity_tag(etag)
    if not requested_weak and requested_tag == own_tag:
        return 304, out_headers, b""
    return status, out_headers, body


def _cached_handler(cache: Cache, key: str):
    async def handler(request: web.Request) -> web.Response:
        value = cache.get(key)
        if value is None:
            return web.Response(status=503)
        body = json.dumps(value, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
        return web.Response(
            body=body,
            content_type="application/json",
            headers={"Cache-Control": cache_control_header()},
        )

    return handler


def _health_handler(connection: sqlite3.Connection):
    async def handler(request: web.Request) -> web.Response:
        try:
            connection.execute("SELECT 1").fetchone()
        except sqlite3.Error as error:
            logger.error("database ping failed: %s", error)
            return web.Response(status=500)
        return web.Response(status=200)

    return handler


@web.middleware
async def _etag_middleware(request: web.Request, handler) -> web.StreamResponse:
    response = await handler(request)
    if not isinstance(response, web.Response):
        return response
    raw = response.body
    body = raw if isinstance(raw, (bytes, bytearray)) else b""
    headers = {
        name: value
        for name, value in response.headers.items()
        if name.lower() != "content-length"
    }
    status, headers, body = apply_etag(
        response.status, headers, bytes(body), request.headers.get("If-None-Match")
    )
    if not body and status != 304:
        logger.debug("response without body, skipping etag, path=%s", request.path)
    result = web.Response(status=status, headers=headers, body=body or None)
    if body:
        result.enable_compression()
    return result


def create_app(cache: Cache, connection: sqlite3.Connection) -> web.Application:
    """The web application serving ``cache`` and pinging ``connection`` for health."""
    app = web.Application(middlewares=[_etag_middleware])
    for path, key in ROUTES.items():
        app.router.add_get(path, _cached_handler(cache, key))
    for path in HEALTH_ROUTES:
        app.router.add_get(path, _health_handler(connection))
    return app


def _refresh_context(cache: Cache, connection: sqlite3.Connection, interval: float):
    async def refresh_loop() -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                cache.refresh(connection)
            except (sqlite3.Error, ValueError) as error:
                logger.error("failed to refresh cache: %s", error)

    async def context(app: web.Application) -> AsyncIterator[None]:
        task = asyncio.create_task(refresh_loop())
        yield
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    return context


def main(argv: list[str] | None = None) -> None:
    """Warm the cache and serve the API until interrupted."""
    parser = argparse.ArgumentParser(prog="serve")
    parser.add_argument(
        "--database",
        default=os.environ.get(_DATABASE_ENV, _DEFAULT_DATABASE),
        help="path of the SQLite database",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=int(os.environ.get("PORT", DEFAULT_PORT)),
        help="port to listen on",
    )
    parser.add_argument(
        "--refresh-interval",
        type=float,
        default=DEFAULT_REFRESH_INTERVAL_SECONDS,
        help="seconds between cache reloads from the store",
    )
    args = parser.parse_args(argv)

    level = os.environ.get("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(level=getattr(logging, level, logging.INFO))

    connection = sqlite3.connect(args.database)
    try:
        key_value_store.ensure_schema(connection)
        logger.debug("warming cache")
        cache = Cache()
        cache.refresh(connection)
        logger.info("cache ready")

        app = create_app(cache, connection)
        app.cleanup_ctx.append(_refresh_context(cache, connection, args.refresh_interval))
        logger.info("server listening, port=%s", args.port)
        web.run_app(app, host="0.0.0.0", port=args.port)
    finally:
        connection.close()