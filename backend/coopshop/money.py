# Overview: Decimal helpers for currency amounts.

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

CENT = Decimal("0.01")
UNIT = Decimal("1")
ZERO = Decimal("0.00")


class MoneyError(ValueError):
    """Raised when a value cannot be read as a currency amount."""


def to_money(value: Any) -> Decimal:
    """
    Normalize a currency value to a Decimal quantized to 0.01.

    Floats are converted through str() so 1234.56 stays 1234.56 instead of
    picking up binary noise. None and "" read as zero.
    """
    if value is None or value == "":
        return ZERO
    if isinstance(value, bool):
        raise MoneyError("boolean is not a currency amount")
    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, (int, float)):
        amount = Decimal(str(value))
    else:
        text = str(value).strip().replace(",", "")
        try:
            amount = Decimal(text)
        except InvalidOperation:
            raise MoneyError(f"invalid currency amount: {value!r}")
    if not amount.is_finite():
        raise MoneyError(f"invalid currency amount: {value!r}")
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def to_rate(value: Any) -> Decimal:
    """Read a rate such as 0.13 without quantizing it."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_whole(value: Decimal) -> Decimal:
    """Round to a whole currency unit, half-up, kept at 2dp."""
    return value.quantize(UNIT, rounding=ROUND_HALF_UP).quantize(CENT)


def clamp_non_negative(value: Decimal) -> Decimal:
    return value if value > ZERO else ZERO


def money_json(value: Decimal | None) -> float | int | None:
    """JSON-friendly number: whole amounts as int, otherwise a 2dp float."""
    if value is None:
        return None
    value = to_money(value)
    if value == value.to_integral_value():
        return int(value)
    return float(value)


def format_naira(value: Decimal) -> str:
    """Display form used in limit messages, e.g. ₦50,000 or ₦3,703.68."""
    value = to_money(value)
    if value == value.to_integral_value():
        return f"₦{int(value):,}"
    return f"₦{value:,.2f}"
