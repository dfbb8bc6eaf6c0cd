"""
Monetary Value Module

Parsing and display rounding for Decimal amounts. Loan figures are carried at
full Decimal precision and only rounded when presented. NEVER uses float for
stored monetary values.
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP, getcontext
from typing import Any

from .exceptions import ValidationError

# High precision so flat-rate totals reproduce installment * count
getcontext().prec = 28

ZERO = Decimal('0')


def to_decimal(value: Any, field_name: str) -> Decimal:
    """
    Convert an incoming number to Decimal.

    Floats go through str() so 0.1 stays 0.1. Booleans, empty strings and
    non-finite values are rejected.
    """
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{field_name} is required")
    if isinstance(value, Decimal):
        result = value
    else:
        text = str(value).strip()
        if not text:
            raise ValidationError(f"{field_name} is required")
        try:
            result = Decimal(text)
        except InvalidOperation:
            raise ValidationError(f"{field_name} must be a number") from None
    if not result.is_finite():
        raise ValidationError(f"{field_name} must be a finite number")
    return result


def round_money(amount: Decimal, places: int = 2) -> Decimal:
    """Round half-up for display"""
    return amount.quantize(Decimal('0.1') ** places, rounding=ROUND_HALF_UP)


def format_money(amount: Decimal, places: int = 0) -> str:
    """Format for messages, e.g. '103,747'"""
    return f"{round_money(amount, places):,.{places}f}"
