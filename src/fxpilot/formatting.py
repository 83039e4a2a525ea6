"""Display helpers for money and prices."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

MISSING = "—"


def _to_decimal(value: object) -> Decimal | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        result = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    if result.is_nan() or result.is_infinite():
        return None
    return result


def format_pnl(value: object) -> str:
    """Signed dollar amount: "+$1,234.50", "-$0.20", "$0.00"."""
    amount = _to_decimal(value)
    if amount is None:
        return MISSING
    rounded = amount.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    text = f"{abs(rounded):,.2f}"
    if rounded > 0:
        return f"+${text}"
    if rounded < 0:
        return f"-${text}"
    return f"${text}"


def format_price(value: object) -> str:
    """Price with 5 decimals."""
    price = _to_decimal(value)
    if price is None:
        return MISSING
    return f"{price.quantize(Decimal('0.00001'), rounding=ROUND_HALF_UP):.5f}"
