"""
Amount parsing for user input (API bodies, Telegram)
"""
from decimal import Decimal, InvalidOperation

_CENT = Decimal("0.01")


def parse_amount(value) -> Decimal:
    """
    Parse a money amount into Decimal.

    Accepts Decimal/int/float/str; a decimal comma is treated as a point and
    spaces used as thousands separators are dropped.

    Raises:
        ValueError: not a number, or more than 2 decimal places

    Example:
        >>> parse_amount("1 500,50")
        Decimal('1500.50')
    """
    if isinstance(value, Decimal):
        amount = value
    else:
        raw = str(value if value is not None else "").strip()
        raw = raw.replace(" ", "").replace(" ", "").replace(",", ".")
        try:
            amount = Decimal(raw)
        except (InvalidOperation, ValueError):
            raise ValueError("Invalid amount")

    if not amount.is_finite():
        raise ValueError("Invalid amount")
    try:
        if amount != amount.quantize(_CENT):
            raise ValueError("At most 2 decimal places are allowed")
    except InvalidOperation:
        raise ValueError("Invalid amount")
    return amount
