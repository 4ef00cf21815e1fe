"""
First due date and first-month proration for a new tenancy.

Monthly rent is due on the property's due day. A tenant moving in after the
due day owes a prorated charge for the rest of the start month and the first
full cycle begins on the due day of the following month.
"""
from datetime import date
from decimal import Decimal
from typing import NamedTuple, Optional

from rentcycle.database.models import RentFrequency
from rentcycle.schemas.validation import validate_amount, validate_date, validate_due_day
from rentcycle.utils.dates import (
    add_years, days_in_month, format_date, round_half_up, safe_date
)


class InitialDueDate(NamedTuple):
    next_due_date: date
    prorated_amount: Optional[Decimal] = None
    period_label: Optional[str] = None  # e.g. "Jan 20 - Jan 31, 2024"
    days_occupied: Optional[int] = None
    days_in_month: Optional[int] = None

    @property
    def is_prorated(self) -> bool:
        return self.prorated_amount is not None


def compute_initial_due_date(
    start_date: date,
    rent_frequency: RentFrequency,
    due_day: int,
    rent_amount
) -> InitialDueDate:
    """
    Seed the billing timeline of a new tenancy.

    Args:
        start_date: Move-in date
        rent_frequency: monthly or yearly
        due_day: Day of month rent is due (1-31), clamped to short months
        rent_amount: Rent per period

    Returns:
        InitialDueDate with proration details when the start is past the due day

    Raises:
        InvalidDateError: Bad start date or due day
        NegativeAmountError: Negative rent
    """
    start_date = validate_date(start_date, "start_date")
    due_day = validate_due_day(due_day)
    rent = validate_amount(rent_amount, "rent_amount")
    frequency = RentFrequency(rent_frequency)

    if frequency == RentFrequency.yearly:
        return InitialDueDate(next_due_date=add_years(start_date, 1))

    due_in_start_month = safe_date(start_date.year, start_date.month, due_day)

    if start_date.day <= due_in_start_month.day:
        # First full cycle starts right away
        return InitialDueDate(next_due_date=due_in_start_month)

    next_due = safe_date(start_date.year, start_date.month + 1, due_day)

    month_days = days_in_month(start_date.year, start_date.month)
    days_occupied = month_days - start_date.day + 1  # start day included
    prorated = round_half_up(rent * days_occupied / month_days)

    month_end = safe_date(start_date.year, start_date.month, month_days)
    label = f"{format_date(start_date).split(',')[0]} - {format_date(month_end)}"

    return InitialDueDate(
        next_due_date=next_due,
        prorated_amount=prorated,
        period_label=label,
        days_occupied=days_occupied,
        days_in_month=month_days
    )
