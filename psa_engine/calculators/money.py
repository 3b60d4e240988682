"""Integer minor-unit arithmetic.

All amounts are integer cents. Products of hours, rates, markups and
percentages are computed in ``Decimal`` and rounded once, half away from
zero, to a whole cent.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Union

Number = Union[int, float, Decimal, str]

_ONE = Decimal("1")
_HUNDRED = Decimal("100")


def to_decimal(value: Number) -> Decimal:
    """Convert to Decimal, going through ``str`` for floats.

    Example:
        >>> to_decimal(8.1)
        Decimal('8.1')
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def round_half_up(value: Number) -> int:
    """Round to the nearest integer, halves away from zero.

    Example:
        >>> round_half_up(Decimal("2.5")), round_half_up(Decimal("-2.5"))
        (3, -3)
    """
    return int(to_decimal(value).quantize(_ONE, rounding=ROUND_HALF_UP))


def multiply_cents(quantity: Number, rate: Number) -> int:
    """``round(quantity x rate)`` in cents."""
    return round_half_up(to_decimal(quantity) * to_decimal(rate))


def apply_markup(amount: int, markup_rate: Number) -> int:
    """Billed amount of a cost with fractional markup.

    Example:
        >>> apply_markup(5000, 0.10)
        5500
    """
    return round_half_up(to_decimal(amount) * (_ONE + to_decimal(markup_rate)))


def percentage_of(amount: int, percentage: Number) -> int:
    """``round(amount x percentage / 100)``.

    Example:
        >>> percentage_of(10_000_000, 25)
        2500000
    """
    return round_half_up(to_decimal(amount) * to_decimal(percentage) / _HUNDRED)


def ratio_percent(part: Number, whole: Number) -> int:
    """``round(part / whole x 100)``, or 0 when ``whole`` is 0."""
    whole_dec = to_decimal(whole)
    if whole_dec == 0:
        return 0
    return round_half_up(to_decimal(part) * _HUNDRED / whole_dec)


def sum_hours(values) -> float:
    """Sum hour quantities without binary float drift."""
    return float(sum((to_decimal(v) for v in values), Decimal("0")))


def format_cents(cents: int) -> str:
    """Render cents as a dollar string.

    Example:
        >>> format_cents(215500)
        '$2,155.00'
        >>> format_cents(-1250)
        '-$12.50'
    """
    sign = "-" if cents < 0 else ""
    return f"{sign}${Decimal(abs(cents)) / _HUNDRED:,.2f}"


def format_rate(cents: int) -> str:
    """Compact hourly-rate form: whole dollars drop the cents.

    Example:
        >>> format_rate(15000)
        '$150'
    """
    if cents % 100 == 0:
        return f"${cents // 100:,}"
    return format_cents(cents)
