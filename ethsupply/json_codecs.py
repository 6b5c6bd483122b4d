"""JSON helpers for integers that travel as strings."""

from __future__ import annotations

import re

_I32_MIN = -(2**31)
_I32_MAX = 2**31 - 1
_INTEGER_PATTERN = re.compile(r"[+-]?[0-9]+")


def int32_from_string(value: object) -> int:
    """Decode a 32-bit signed integer carried as a JSON string."""
    if not isinstance(value, str):
        raise TypeError(f"expected a string, got {type(value).__name__}")
    if not _INTEGER_PATTERN.fullmatch(value):
        raise ValueError(f"invalid digit found in string: {value!r}")
    number = int(value)
    if not _I32_MIN <= number <= _I32_MAX:
        raise ValueError(f"number too large to fit in target type: {value!r}")
    return number


def string_from_int32(value: int) -> str:
    """Encode a 32-bit signed integer as a string."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"expected an int, got {type(value).__name__}")
    if not _I32_MIN <= value <= _I32_MAX:
        raise OverflowError(f"{value} does not fit in a signed 32-bit integer")
    return str(value)