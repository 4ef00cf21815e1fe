import enum
from datetime import date, datetime
from decimal import Decimal
from typing import List, NamedTuple, Optional, Union

from rentcycle.config import config
from rentcycle.database.models import RentFrequency
from rentcycle.errors import ArrearsLimitExceededError
from rentcycle.schemas.validation import validate_amount, validate_date
from rentcycle.utils.dates import add_periods, period_label, to_date


class BillingPeriod(NamedTuple):
    label: str  # "January 2024" or "2024"
    due_date: date


class ArrearsResult(NamedTuple):
    """Overdue periods (oldest first) and the next period that is not yet overdue"""
    overdue_periods: List[BillingPeriod]
    total_overdue: Decimal
    upcoming_period: BillingPeriod
    rent_amount: Decimal

    @property
    def is_overdue(self) -> bool:
        return len(self.overdue_periods) > 0

    @property
    def payable_periods(self) -> List[BillingPeriod]:
        """Periods offered for payment: the arrears, or the upcoming period when none."""
        if self.overdue_periods:
            return list(self.overdue_periods)
        return [self.upcoming_period]

    @property
    def amount_due(self) -> Decimal:
        return self.rent_amount * len(self.payable_periods)


class StandingState(str, enum.Enum):
    late = "late"
    due_soon = "due_soon"
    current = "current"


class TenancyStanding(NamedTuple):
    state: StandingState
    days_overdue: int  # Negative while the due date is still ahead


def compute_arrears(
    next_due_date: date,
    rent_frequency: RentFrequency,
    rent_amount,
    now: Union[date, datetime],
    limit: Optional[int] = None
) -> ArrearsResult:
    """
    Enumerate billing periods whose due date is strictly before today.

    Every period's due date is derived from next_due_date directly
    (anchor + i steps) so month-end clamping never drifts.

    Raises:
        ArrearsLimitExceededError: More than `limit` periods overdue
    """
    next_due_date = validate_date(next_due_date, "next_due_date")
    rent = validate_amount(rent_amount, "rent_amount")
    frequency = RentFrequency(rent_frequency)
    today = to_date(now)
    if limit is None:
        limit = config.ARREARS_PERIOD_LIMIT

    overdue: List[BillingPeriod] = []
    steps = 0
    current_due = next_due_date

    while current_due < today:
        if len(overdue) >= limit:
            raise ArrearsLimitExceededError(
                f"More than {limit} overdue periods since {next_due_date}; "
                f"the stored due date looks corrupt"
            )
        overdue.append(BillingPeriod(period_label(current_due, frequency), current_due))
        steps += 1
        current_due = add_periods(next_due_date, frequency, steps)

    upcoming = BillingPeriod(period_label(current_due, frequency), current_due)

    return ArrearsResult(
        overdue_periods=overdue,
        total_overdue=rent * len(overdue),
        upcoming_period=upcoming,
        rent_amount=rent
    )


def classify_standing(
    next_due_date: date,
    now: Union[date, datetime],
    due_soon_days: Optional[int] = None
) -> TenancyStanding:
    """Late once the due date has passed, due soon inside the warning window."""
    if due_soon_days is None:
        due_soon_days = config.DUE_SOON_DAYS

    days_overdue = (to_date(now) - next_due_date).days

    if days_overdue > 0:
        return TenancyStanding(StandingState.late, days_overdue)
    if days_overdue > -due_soon_days:
        return TenancyStanding(StandingState.due_soon, days_overdue)
    return TenancyStanding(StandingState.current, days_overdue)
