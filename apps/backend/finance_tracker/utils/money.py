from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

from sqlalchemy.types import BigInteger, TypeDecorator

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
# DECIMAL(15, 2): thirteen integer digits
MAX_AMOUNT = Decimal("9999999999999.99")


def to_decimal(value: Any) -> Decimal:
    """Parse user input (str/int/float/Decimal) without going through float arithmetic."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise InvalidOperation(f"not a number: {value!r}")
    try:
        return Decimal(str(value).strip())
    except (InvalidOperation, ValueError) as e:
        raise InvalidOperation(f"not a number: {value!r}") from e


def round2(x: Decimal) -> Decimal:
    return x.quantize(CENT, rounding=ROUND_HALF_UP)


def has_at_most_cents(x: Decimal) -> bool:
    return x.is_finite() and x == x.quantize(CENT, rounding=ROUND_HALF_UP)


def to_cents(value: Any) -> int:
    return int((round2(to_decimal(value)) * 100).to_integral_value(rounding=ROUND_HALF_UP))


def from_cents(cents: int) -> Decimal:
    return Decimal(int(cents)).scaleb(-2)


class Money(TypeDecorator):
    """Fixed-point currency amount stored as integer cents, surfaced as Decimal.

    Integer storage keeps in-database arithmetic (``total_balance + :delta``,
    ``SUM(amount)``) exact on every backend, SQLite included.
    """

    impl = BigInteger
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return to_cents(value)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return from_cents(value)
