"""Monetary amounts are Decimal with exactly two fraction digits."""
from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Optional

CENT = Decimal("0.01")

# Upper bound keeps values inside Numeric(12, 2)
MAX_AMOUNT = Decimal("9999999999.99")


def to_money(value: Any) -> Decimal:
    """
    Coerce ints, numeric strings and Decimals to a 2dp Decimal.

    Floats are rejected: binary floats cannot represent most cent values.
    Raises ValueError on anything else.
    """
    if isinstance(value, bool) or isinstance(value, float):
        raise ValueError("amount must be a decimal string or integer")
    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, int):
        amount = Decimal(value)
    elif isinstance(value, str):
        try:
            amount = Decimal(value.strip())
        except InvalidOperation:
            raise ValueError("amount must be a decimal number")
    else:
        raise ValueError("amount must be a decimal string or integer")

    if not amount.is_finite():
        raise ValueError("amount must be finite")
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def money_str(value: Optional[Decimal]) -> Optional[str]:
    if value is None:
        return None
    return f"{Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP):.2f}"
