"""
Money helpers shared by the billing and package flows.

All amounts are ``Decimal`` values quantized to two places. Values coming from
the lab backend may be numbers or numeric strings (``"350.00"``) and are
normalised here before any arithmetic happens.
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

TWO_PLACES = Decimal('0.01')
ZERO = Decimal('0.00')
# largest amount a DecimalField(max_digits=10, decimal_places=2) column holds
MAX_AMOUNT = Decimal('99999999.99')


class MoneyParseError(ValueError):
    """Raised when a value cannot be read as a monetary amount"""


def quantize(value: Decimal) -> Decimal:
    return value.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def parse_money(value) -> Decimal:
    """
    Parse a numeric-ish value into a two-place Decimal.

    Args:
        value: int, Decimal, float or numeric string

    Returns:
        Quantized Decimal

    Raises:
        MoneyParseError: for booleans, blanks, non-numeric strings, NaN, infinity
            or values too large to quantize
    """
    if value is None or isinstance(value, bool):
        raise MoneyParseError(f'Not a monetary amount: {value!r}')

    if isinstance(value, float):
        # go through str so 0.1 stays 0.1 instead of its binary expansion
        value = str(value)

    if isinstance(value, str):
        value = value.strip()
        if not value:
            raise MoneyParseError('Blank monetary amount')

    try:
        amount = Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise MoneyParseError(f'Not a monetary amount: {value!r}')

    if not amount.is_finite():
        raise MoneyParseError(f'Not a finite amount: {value!r}')

    try:
        return quantize(amount)
    except InvalidOperation:
        # more digits than the decimal context can hold
        raise MoneyParseError(f'Amount out of range: {value!r}')


def format_money(value: Decimal) -> str:
    return f'{quantize(value):.2f}'
