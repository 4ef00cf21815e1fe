import calendar
from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Union

from rentcycle.database.models import RentFrequency
from rentcycle.errors import InvalidDateError

MONTH_NAMES = [
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December"
]


def days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def safe_date(year: int, month: int, day: int) -> date:
    """
    Build a date, clamping the day to the month's last day.
    Month may overflow past 12 (13 -> January of next year).
    """
    year += (month - 1) // 12
    month = (month - 1) % 12 + 1
    if day < 1:
        raise InvalidDateError(f"Day must be at least 1, got {day}")
    return date(year, month, min(day, days_in_month(year, month)))


def add_months(value: date, months: int) -> date:
    """Shift by whole months. Jan 31 + 1 month -> Feb 28/29."""
    return safe_date(value.year, value.month + months, value.day)


def add_years(value: date, years: int) -> date:
    """Shift by whole years. Feb 29 + 1 year -> Feb 28."""
    return safe_date(value.year + years, value.month, value.day)


def add_periods(value: date, frequency: RentFrequency, count: int = 1) -> date:
    """Advance a due date by `count` billing steps of the given frequency."""
    if RentFrequency(frequency) == RentFrequency.yearly:
        return add_years(value, count)
    return add_months(value, count)


def to_date(value: Union[date, datetime]) -> date:
    """Drop the time of day, rent cycle comparisons are date-only."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    raise InvalidDateError(f"Expected a date, got {value!r}")


def month_label(value: date) -> str:
    return f"{MONTH_NAMES[value.month - 1]} {value.year}"


def period_label(value: date, frequency: RentFrequency) -> str:
    """Human readable billing period: 'January 2024' or '2024'."""
    if RentFrequency(frequency) == RentFrequency.yearly:
        return str(value.year)
    return month_label(value)


def format_date(date_obj) -> str:
    """Short date: 'Jan 20, 2024'"""
    if not date_obj:
        return "-"
    return f"{MONTH_NAMES[date_obj.month - 1][:3]} {date_obj.day}, {date_obj.year}"


def round_half_up(value) -> Decimal:
    """Round to a whole currency unit, halves away from zero."""
    return Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
