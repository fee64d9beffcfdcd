"""
Module: unifund_kernel.db.types
Responsibility: Money coercion shared by the campaign and donation services.
Architecture position: Kernel > DB.  MUST NOT import from models/, domain/,
    services/ or selectors/.

Amounts are Decimal with two places end to end; columns are Numeric(18, 2).
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

MONEY_DECIMAL_PLACES = 2
MONEY_QUANTUM = Decimal(1).scaleb(-MONEY_DECIMAL_PLACES)


def round_money(value: Decimal) -> Decimal:
    return value.quantize(MONEY_QUANTUM, rounding=ROUND_HALF_UP)


def to_money(value: Decimal | int | str) -> Decimal:
    """
    Coerce an amount to a rounded Decimal.

    Raises:
        TypeError: If value is a float.
        ValueError: If value is not numeric.
    """
    if isinstance(value, float):
        raise TypeError("Monetary amounts must not be float")
    try:
        return round_money(Decimal(str(value)))
    except InvalidOperation as exc:
        raise ValueError(f"Not a monetary amount: {value!r}") from exc
