"""Amounts of ether in ETH, Gwei and Wei."""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from decimal import Decimal
from typing import ClassVar

GWEI_PER_ETH_F64: float = 1_000_000_000.0
WEI_PER_ETH: int = 1_000_000_000_000_000_000

_I64_MIN = -(2**63)
_I64_MAX = 2**63 - 1
_I128_MIN = -(2**127)
_I128_MAX = 2**127 - 1

_INTEGER_PATTERN = re.compile(r"[+-]?[0-9]+")


def _require_int(value: object, what: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{what} must be an int, got {type(value).__name__}")
    return value


def _in_range(value: int, low: int, high: int, message: str) -> int:
    if not low <= value <= high:
        raise OverflowError(message)
    return value


def _parse_int(text: str, low: int, high: int) -> int:
    if not _INTEGER_PATTERN.fullmatch(text):
        raise ValueError(f"invalid digit found in string: {text!r}")
    value = int(text)
    if not low <= value <= high:
        raise ValueError(f"number too large to fit in target type: {text!r}")
    return value


def _saturating_int(value: float, low: int, high: int) -> int:
    """Truncate a float toward zero, saturating at the bounds; NaN becomes 0."""
    if math.isnan(value):
        return 0
    if math.isinf(value):
        return high if value > 0 else low
    return max(low, min(high, math.trunc(value)))


def _trunc_div(lhs: int, rhs: int) -> int:
    quotient = abs(lhs) // abs(rhs)
    return quotient if (lhs < 0) == (rhs < 0) else -quotient


def _format_float(value: float) -> str:
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "inf" if value > 0 else "-inf"
    if value.is_integer():
        if value == 0 and math.copysign(1.0, value) < 0:
            return "-0"
        return str(int(value))
    return format(Decimal(repr(value)), "f")


@dataclass(frozen=True)
class GweiImprecise:
    """A Gwei amount as a float, for when precision matters little."""

    amount: float

    def __float__(self) -> float:
        return self.amount


@dataclass(frozen=True)
class EthNewtype:
    """An imprecise amount of ETH; prefer Gwei or Wei for exact values."""

    amount: float

    GWEI_PER_ETH: ClassVar[int] = 1_000_000_000
    WEI_PER_ETH: ClassVar[int] = WEI_PER_ETH

    def __add__(self, other: EthNewtype) -> EthNewtype:
        if not isinstance(other, EthNewtype):
            return NotImplemented
        return EthNewtype(self.amount + other.amount)

    def __str__(self) -> str:
        return _format_float(self.amount)

    def __float__(self) -> float:
        return self.amount

    def to_gwei(self) -> GweiNewtype:
        """Convert to Gwei, truncating any fraction of a Gwei."""
        scaled = self.amount * float(self.GWEI_PER_ETH)
        return GweiNewtype(_saturating_int(scaled, _I64_MIN, _I64_MAX))

    def to_wei(self) -> WeiNewtype:
        """Convert to Wei; the ETH amount is truncated to whole ETH first."""
        whole_eth = _saturating_int(self.amount, _I128_MIN, _I128_MAX)
        return WeiNewtype(whole_eth * self.WEI_PER_ETH)

    def to_gwei_imprecise(self) -> GweiImprecise:
        return GweiImprecise(self.amount * float(self.GWEI_PER_ETH))


@dataclass(frozen=True)
class GweiNewtype:
    """An exact amount of Gwei within the signed 64-bit range."""

    amount: int

    WEI_PER_GWEI: ClassVar[int] = 1_000_000_000

    def __post_init__(self) -> None:
        _require_int(self.amount, "gwei amount")
        _in_range(self.amount, _I64_MIN, _I64_MAX, "gwei amount out of range")

    def __add__(self, other: GweiNewtype) -> GweiNewtype:
        if not isinstance(other, GweiNewtype):
            return NotImplemented
        result = self.amount + other.amount
        return GweiNewtype(
            _in_range(result, _I64_MIN, _I64_MAX, "caused overflow in gwei addition")
        )

    def __sub__(self, other: GweiNewtype) -> GweiNewtype:
        if not isinstance(other, GweiNewtype):
            return NotImplemented
        result = self.amount - other.amount
        return GweiNewtype(
            _in_range(result, _I64_MIN, _I64_MAX, "caused underflow in gwei subtraction")
        )

    def __floordiv__(self, other: GweiNewtype) -> GweiNewtype:
        """Integer division truncating toward zero."""
        if not isinstance(other, GweiNewtype):
            return NotImplemented
        if other.amount == 0:
            raise ZeroDivisionError("attempt to divide gwei by zero")
        result = _trunc_div(self.amount, other.amount)
        return GweiNewtype(
            _in_range(result, _I64_MIN, _I64_MAX, "caused overflow in gwei division")
        )

    def __str__(self) -> str:
        return str(self.amount)

    def __int__(self) -> int:
        return self.amount

    def __float__(self) -> float:
        return float(self.amount)

    def to_eth(self) -> EthNewtype:
        """Convert to ETH; this loses precision."""
        return EthNewtype(float(self.amount) / float(EthNewtype.GWEI_PER_ETH))

    def to_wei(self) -> WeiNewtype:
        return WeiNewtype(self.amount * self.WEI_PER_GWEI)

    def to_gwei_imprecise(self) -> GweiImprecise:
        return GweiImprecise(float(self.amount))

    def to_json(self) -> str:
        """Serialize as a decimal string, keeping full precision."""
        return str(self.amount)


@dataclass(frozen=True)
class WeiNewtype:
    """An exact amount of Wei within the signed 128-bit range."""

    amount: int

    def __post_init__(self) -> None:
        _require_int(self.amount, "wei amount")
        _in_range(self.amount, _I128_MIN, _I128_MAX, "wei amount out of range")

    def __add__(self, other: WeiNewtype) -> WeiNewtype:
        if not isinstance(other, WeiNewtype):
            return NotImplemented
        result = self.amount + other.amount
        return WeiNewtype(
            _in_range(result, _I128_MIN, _I128_MAX, "caused overflow in wei addition")
        )

    def __sub__(self, other: WeiNewtype) -> WeiNewtype:
        if not isinstance(other, WeiNewtype):
            return NotImplemented
        result = self.amount - other.amount
        return WeiNewtype(
            _in_range(result, _I128_MIN, _I128_MAX, "caused underflow in wei subtraction")
        )

    def __str__(self) -> str:
        return str(self.amount)

    def __int__(self) -> int:
        return self.amount

    def to_eth(self) -> EthNewtype:
        """Convert to ETH; this loses precision."""
        return EthNewtype(float(self.amount) / float(WEI_PER_ETH))

    def to_gwei(self) -> GweiNewtype:
        """Convert to Gwei, truncating toward zero."""
        return GweiNewtype(_trunc_div(self.amount, GweiNewtype.WEI_PER_GWEI))

    def to_json(self) -> str:
        """Serialize as a decimal string, keeping full precision."""
        return str(self.amount)


def gwei_from_json(value: object) -> GweiNewtype:
    """Decode a Gwei amount given as a JSON integer or a string of digits."""
    if isinstance(value, str):
        try:
            return GweiNewtype(_parse_int(value, _I64_MIN, _I64_MAX))
        except ValueError as error:
            raise ValueError(
                f"unexpected value: {value}, error: {error}; expected a number as "
                'string: "118908973575220938", which fits within u64'
            ) from error
    if isinstance(value, int) and not isinstance(value, bool):
        if not _I64_MIN <= value <= _I64_MAX:
            raise ValueError(f"gwei amount {value} does not fit in a signed 64-bit integer")
        return GweiNewtype(value)
    raise TypeError(
        "expected a number, or string of number, smaller u64::MAX "
        "representing some amount of ETH in Gwei"
    )


def parse_wei(text: str) -> WeiNewtype:
    """Parse a decimal string into a Wei amount."""
    return WeiNewtype(_parse_int(text, _I128_MIN, _I128_MAX))


def wei_from_json(value: object) -> WeiNewtype:
    """Decode a Wei amount, which is always given as a JSON string."""
    if not isinstance(value, str):
        raise TypeError(f"expected a string of digits, got {type(value).__name__}")
    try:
        return parse_wei(value)
    except ValueError as error:
        raise ValueError(f"failed to parse wei: {error}") from error


def wei_from_eth(eth: int) -> WeiNewtype:
    """Wei for a whole number of ETH."""
    return WeiNewtype(_require_int(eth, "eth amount") * WEI_PER_ETH)