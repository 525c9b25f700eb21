"""
Unified money formatting for the whole project.

Usage:
    from app.utils.money import format_money

    format_money(15000)            -> "15,000 ETB"
    format_money(1200.50, "USD")   -> "1,200.5 USD"
    format_money(0)                -> "0 ETB"
"""
from decimal import Decimal

from app.config import get_settings


def format_money(amount, currency: str | None = None) -> str:
    """
    Format an amount with comma thousands separators and the currency code.

    Whole amounts are shown without decimals; fractional amounts keep up to
    two significant decimal places ("1,200.5", "99.25").
    """
    if not isinstance(amount, Decimal):
        amount = Decimal(str(amount))
    currency = currency or get_settings().CURRENCY

    amount = amount.quantize(Decimal("0.01"))
    if amount == amount.to_integral_value():
        formatted = f"{amount:,.0f}"
    else:
        formatted = f"{amount:,.2f}".rstrip("0")
    return f"{formatted} {currency}"
