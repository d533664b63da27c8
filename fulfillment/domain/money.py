"""Currency-safe decimal helpers and quantity/weight aggregation."""
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Iterable, Optional

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_decimal(value: Any, default: Decimal = ZERO) -> Decimal:
    """Parse numbers, numeric strings and None into a Decimal.

    Floats go through ``str`` so 0.1 stays 0.1. Anything unparsable yields
    ``default``; stored amounts arrive as strings and may be blank.
    """
    if value is None or value == "":
        return default
    if isinstance(value, Decimal):
        return value
    try:
        result = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return default
    if not result.is_finite():
        return default
    return result


def quantize(value: Any) -> Decimal:
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def format_money(amount: Any, currency: Optional[str] = "AED") -> str:
    return f"{currency or 'AED'} {quantize(amount):.2f}"


def total_quantity(items: Iterable[Any]) -> int:
    return sum(int(getattr(item, "quantity", 0) or 0) for item in items)


def total_weight(items: Iterable[Any], default_unit_weight: Decimal = Decimal("1")) -> Decimal:
    """Sum of weight x quantity; items without a weight count as ``default_unit_weight``."""
    total = Decimal("0")
    for item in items:
        weight = to_decimal(getattr(item, "weight_value", None), default_unit_weight)
        if weight <= 0:
            weight = default_unit_weight
        total += weight * int(getattr(item, "quantity", 0) or 0)
    return total
