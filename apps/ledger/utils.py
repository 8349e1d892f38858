# ledger/utils.py

"""
Money helpers.

Every amount inside the system is an int of minor units (paisa/cents).
Decimal appears only at the edges: parsing request payloads and rendering
statements.
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
import calendar

from core.exceptions import InvalidAmountError


def to_minor_units(value, minor_units_per_major=100):
    """
    Convert a major-unit amount (Decimal, str or int) to int minor units.

    Rounds half-up to the nearest minor unit. Floats are refused so binary
    rounding never reaches a balance.

    Example:
        >>> to_minor_units("5000.50")
        500050
    """
    if isinstance(value, bool) or isinstance(value, float):
        raise InvalidAmountError(f"Amount must be a decimal string or integer, got {value!r}")
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise InvalidAmountError(f"Invalid amount: {value!r}")
    if not amount.is_finite():
        raise InvalidAmountError(f"Invalid amount: {value!r}")

    minor = (amount * minor_units_per_major).quantize(Decimal('1'), rounding=ROUND_HALF_UP)
    return int(minor)


def from_minor_units(minor, minor_units_per_major=100):
    """Convert int minor units back to a Decimal of major units."""
    places = len(str(minor_units_per_major)) - 1
    quantum = Decimal(1).scaleb(-places) if places else Decimal('1')
    return (Decimal(minor) / Decimal(minor_units_per_major)).quantize(quantum)


def format_money(minor, currency='NPR', minor_units_per_major=100):
    """
    Format an amount for display.

    Example:
        >>> format_money(600000)
        'NPR 6,000.00'
    """
    amount = from_minor_units(minor, minor_units_per_major)
    sign = '-' if amount < 0 else ''
    return f"{sign}{currency} {abs(amount):,}"


def divide_half_up(numerator, denominator):
    """
    Integer division rounded half-up (away from zero on ties).

    Used for proration and percentage discounts so results stay exact ints.
    """
    if denominator <= 0:
        raise ValueError("denominator must be positive")
    quotient, remainder = divmod(abs(numerator), denominator)
    if remainder * 2 >= denominator:
        quotient += 1
    return quotient if numerator >= 0 else -quotient


def days_in_month(year, month):
    return calendar.monthrange(year, month)[1]


def balance_type(balance):
    """'Dr' when the student owes money, 'Cr' when in credit, 'Nil' at zero."""
    if balance > 0:
        return 'Dr'
    if balance < 0:
        return 'Cr'
    return 'Nil'
