"""Shared utilities used across the booking engine."""

import re
from datetime import date, datetime, time
from decimal import ROUND_HALF_UP, Decimal

TWO_PLACES = Decimal("0.01")


def round_money(value: Decimal) -> Decimal:
    """Round a money amount to 2 decimal places, half-up.

    Examples:
        >>> round_money(Decimal("2.675"))
        Decimal('2.68')
        >>> round_money(Decimal("120"))
        Decimal('120.00')
    """
    return Decimal(value).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def normalize_postcode(value: str) -> str:
    """Uppercase a UK postcode and strip all whitespace.

    Examples:
        >>> normalize_postcode(" sw9 8ab ")
        'SW98AB'
    """
    return re.sub(r"\s+", "", value).upper()


def parse_time(value: str) -> time:
    """Parse an HH:MM (or HH:MM:SS) string."""
    value = value.strip()
    fmt = "%H:%M:%S" if value.count(":") == 2 else "%H:%M"
    return datetime.strptime(value, fmt).time()


def slot_start(slot_date: date, start_time: time) -> datetime:
    """Combine a slot's calendar date and start time into one datetime."""
    return datetime.combine(slot_date, start_time)


def to_decimal(value) -> Decimal:
    """Convert an int, str, float or Decimal to Decimal without binary float noise."""
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)
