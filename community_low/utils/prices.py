"""Price normalisation shared by the server and client."""

import math
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Optional

PRICE_QUANTUM = Decimal("0.01")
MAX_PRICE = Decimal("9999999999.99")  # Numeric(12, 2)


def to_decimal(value: Any) -> Decimal:
    """Parse a wire price exactly as reported, without rounding.

    Raises:
        ValueError: for None, booleans, non-numeric text or NaN/infinity
    """
    if value is None or isinstance(value, bool):
        raise ValueError("price must be a number")
    if isinstance(value, float) and not math.isfinite(value):
        raise ValueError("price must be finite")
    try:
        price = Decimal(str(value).strip())
    except InvalidOperation:
        raise ValueError(f"invalid price: {value!r}") from None
    if not price.is_finite():
        raise ValueError("price must be finite")
    return price


def normalize_price(value: Any) -> Decimal:
    """Coerce a wire price to a two-decimal Decimal.

    Raises:
        ValueError: as ``to_decimal``, or if the value does not fit the
            storage column
    """
    price = to_decimal(value)
    if abs(price) > MAX_PRICE:
        raise ValueError("price out of range")
    price = price.quantize(PRICE_QUANTUM, rounding=ROUND_HALF_UP)
    if abs(price) > MAX_PRICE:
        raise ValueError("price out of range")
    return price


def parse_price(value: Any) -> Optional[Decimal]:
    """Lenient form of ``normalize_price``: unusable input becomes None."""
    try:
        return normalize_price(value)
    except ValueError:
        return None


def price_to_wire(price: Optional[Decimal]) -> int | float | None:
    """Whole prices go out as integers, others as floats."""
    if price is None:
        return None
    if price == price.to_integral_value():
        return int(price)
    return float(price)
