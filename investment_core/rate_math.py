"""
Rate Math Module

Numeric helpers shared by the schedule, returns and reconciliation code.
Money is always Decimal, rounded half-up to cents. NEVER uses float.
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP, getcontext
from typing import Optional, Union

from .errors import InvalidAmount

# High precision for intermediate calculations
getcontext().prec = 28

TWOPLACES = Decimal('0.01')
ZERO = Decimal('0')
HUNDRED = Decimal('100')

Number = Union[Decimal, int, str, float]


def to_decimal(value: Number, field_name: Optional[str] = None) -> Decimal:
    """
    Convert a number to Decimal via its string form (avoids float artefacts).

    Raises:
        InvalidAmount: If the value is not a number, or is NaN or infinite
    """
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value))
        except InvalidOperation as e:
            raise InvalidAmount(f"Invalid number for {field_name or 'value'}: {value}",
                                field=field_name, constraint="decimal number") from e

    if not result.is_finite():
        raise InvalidAmount(f"{field_name or 'Value'} must be a finite number, got {value}",
                            field=field_name, constraint="finite decimal number")
    return result


def round2(value: Number) -> Decimal:
    """Round to 2 decimal places using half-up rounding"""
    return to_decimal(value).quantize(TWOPLACES, rounding=ROUND_HALF_UP)


def period_interest(base: Number, rate_percent: Number) -> Decimal:
    """
    Interest for a single period.

    Args:
        base: Original principal (flat) or outstanding principal (reducing)
        rate_percent: Rate per period as a percentage, e.g. 3 for 3%

    Returns:
        Unrounded interest amount
    """
    return to_decimal(base) * to_decimal(rate_percent) / HUNDRED


def apply_percentage(amount: Number, percent: Number) -> Decimal:
    """Return `percent`% of `amount`, unrounded"""
    return to_decimal(amount) * to_decimal(percent) / HUNDRED


def is_within_cent(value: Number) -> bool:
    """Check whether a value is closer to zero than one cent"""
    return abs(to_decimal(value)) < TWOPLACES
