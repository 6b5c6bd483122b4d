"""A small JSON key/value store kept in the ``key_value_store`` table."""

from __future__ import annotations

import dataclasses
import json
import logging
import sqlite3
from datetime import datetime
from typing import Any, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _to_jsonable(obj: Any) -> Any:
    to_json = getattr(obj, "to_json", None)
    if callable(to_json):
        return to_json()
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return {field.name: getattr(obj, field.name) for field in dataclasses.fields(obj)}
    if isinstance(obj, datetime):
        return obj.isoformat()
    raise TypeError(f"object of type {type(obj).__name__} is not JSON serializable")


def ensure_schema(connection: sqlite3.Connection) -> None:
    """Create the key/value table if it does not exist yet."""
    with connection:
        connection.execute(
            "CREATE TABLE IF NOT EXISTS key_value_store ("
            " key TEXT PRIMARY KEY,"
            " value TEXT"
            ")"
        )


def get_value(connection: sqlite3.Connection, key: str) -> Any:
    """Return the decoded JSON stored under ``key``, or None when there is none."""
    logger.debug("getting key value pair, key=%s", key)
    row = connection.execute(
        "SELECT value FROM key_value_store WHERE key = ?", (key,)
    ).fetchone()
    if row is None or row[0] is None:
        return None
    return json.loads(row[0])


def get_deserializable_value(
    connection: sqlite3.Connection, key: str, decode: Callable[[Any], T]
) -> T | None:
    """Return ``decode`` applied to the stored value, or None when there is none."""
    value = get_value(connection, key)
    if value is None:
        return None
    return decode(value)


def set_value_str(connection: sqlite3.Connection, key: str, value_str: str) -> None:
    """Store a value given as JSON text; the text must be valid JSON."""
    logger.debug("storing key value pair, key=%s", key)
    try:
        json.loads(value_str)
    except json.JSONDecodeError as error:
        raise ValueError(f"value for key {key!r} is not valid JSON: {error}") from error
    with connection:
        connection.execute(
            "INSERT INTO key_value_store (key, value) VALUES (?, ?)"
            " ON CONFLICT (key) DO UPDATE SET value = excluded.value",
            (key, value_str),
        )


def set_value(connection: sqlite3.Connection, key: str, value: Any) -> None:
    """Store a plain JSON value under ``key``, replacing any previous one."""
    logger.debug("storing key: %s", key)
    set_value_str(connection, key, json.dumps(value))


def set_serializable_value(connection: sqlite3.Connection, key: str, value: Any) -> None:
    """Store any value that serializes to JSON, including dataclasses and amounts."""
    set_value_str(connection, key, json.dumps(value, default=_to_jsonable))