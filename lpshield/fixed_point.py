"""Fixed-point scales and safe integer arithmetic shared by the risk engine
and the settlement ledger.

Every value is a plain Python ``int`` and division always floors (``//``).
Products are formed at full width; only stored *results* are narrowed to the
u64/u128 ranges used for amounts and prices.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Iterable

from .errors import (
    ArithmeticOverflowError,
    DivisionByZeroError,
    InvalidParameterError,
    InvalidPriceError,
)

BPS_SCALE: int = 10_000
PRICE_SCALE: int = 100_000_000  # 1e8
USD_SCALE: int = 1_000_000  # 1e6
HF_SCALE: int = 10**18
RATIO_SCALE: int = 10**18

U64_MAX: int = 2**64 - 1
U128_MAX: int = 2**128 - 1


def mul_div(a: int, b: int, denominator: int) -> int:
    """``a * b // denominator`` with the product kept at full width."""
    if denominator == 0:
        raise DivisionByZeroError("Division by zero")
    return (a * b) // denominator


def narrow(value: int, bound: int = U64_MAX) -> int:
    """Return *value* if it fits ``[0, bound]``; otherwise fail."""
    if value < 0 or value > bound:
        raise ArithmeticOverflowError(f"Value {value} out of range [0, {bound}]")
    return value


def percentile_index(length: int, percentile: int) -> int:
    """Index of the *percentile*-th element in a sorted vector of *length*.

    ``floor(length * percentile / 100)``, clamped to the last element.
    """
    if length <= 0:
        raise InvalidParameterError("Cannot index an empty scenario set")
    index = (length * percentile) // 100
    return min(index, length - 1)


def price_deviation_bps(a: int, b: int) -> int:
    """Relative distance between two prices, in bps of the smaller one."""
    low = min(a, b)
    if low <= 0:
        raise InvalidPriceError(f"Price must be positive (got {a}, {b})")
    if a == b:
        return 0
    return mul_div(abs(a - b), BPS_SCALE, low)


def normalized_score(value: int, benchmark: int) -> int:
    """Score in ``[0, 100]``: ``value`` as a percentage of ``benchmark``, capped."""
    if benchmark == 0:
        raise InvalidParameterError("Benchmark must be non-zero")
    return min(100, mul_div(value, 100, benchmark))


def average(values: Iterable[int]) -> int:
    """Floor arithmetic mean."""
    items = list(values)
    if not items:
        raise InvalidParameterError("Cannot average an empty set")
    return sum(items) // len(items)


def to_scaled(value: float | int | str, scale: int) -> int:
    """Convert a human-readable number (e.g. ``1.5``) to a scaled integer.

    Goes through :class:`~decimal.Decimal` on the string form so that ``1.15``
    becomes exactly ``1_150_000_000_000_000_000`` at 1e18.
    """
    return int(Decimal(str(value)) * scale)
