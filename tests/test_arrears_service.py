import pytest
from datetime import date, datetime
from decimal import Decimal

from rentcycle.database.models import RentFrequency
from rentcycle.errors import ArrearsLimitExceededError, NegativeAmountError
from rentcycle.services.arrears_service import (
    compute_arrears, classify_standing, StandingState
)


def test_three_months_overdue():
    result = compute_arrears(date(2024, 1, 5), RentFrequency.monthly, 2000, date(2024, 4, 5))

    assert [p.label for p in result.overdue_periods] == ["January 2024", "February 2024", "March 2024"]
    assert result.total_overdue == Decimal("6000")
    assert result.upcoming_period.label == "April 2024"
    assert result.upcoming_period.due_date == date(2024, 4, 5)
    assert result.is_overdue


def test_period_due_before_today_is_overdue():
    """April 5 has passed by April 10, so April is owed too"""
    result = compute_arrears(date(2024, 1, 5), RentFrequency.monthly, 2000, date(2024, 4, 10))

    assert len(result.overdue_periods) == 4
    assert result.overdue_periods[-1].label == "April 2024"
    assert result.total_overdue == Decimal("8000")
    assert result.upcoming_period.label == "May 2024"


def test_due_today_is_not_overdue():
    result = compute_arrears(date(2024, 4, 5), RentFrequency.monthly, 2000, date(2024, 4, 5))

    assert result.overdue_periods == []
    assert result.total_overdue == 0
    assert not result.is_overdue
    # Nothing overdue: the upcoming period is offered instead
    assert [p.label for p in result.payable_periods] == ["April 2024"]
    assert result.amount_due == Decimal("2000")


def test_payable_periods_are_the_arrears():
    result = compute_arrears(date(2024, 1, 5), RentFrequency.monthly, 2000, date(2024, 3, 1))

    assert [p.label for p in result.payable_periods] == ["January 2024", "February 2024"]
    assert result.amount_due == Decimal("4000")


def test_time_of_day_is_ignored():
    at_midnight = compute_arrears(date(2024, 1, 5), RentFrequency.monthly, 2000, date(2024, 4, 5))
    late_evening = compute_arrears(date(2024, 1, 5), RentFrequency.monthly, 2000, datetime(2024, 4, 5, 23, 59))

    assert at_midnight == late_evening


def test_same_input_same_result():
    first = compute_arrears(date(2023, 11, 30), RentFrequency.monthly, 1500, date(2024, 3, 1))
    second = compute_arrears(date(2023, 11, 30), RentFrequency.monthly, 1500, date(2024, 3, 1))

    assert first == second


def test_month_end_due_date_does_not_drift():
    """Jan 31 -> Feb 29 -> Mar 31, not Mar 29"""
    result = compute_arrears(date(2024, 1, 31), RentFrequency.monthly, 2000, date(2024, 4, 1))

    assert [p.due_date for p in result.overdue_periods] == [
        date(2024, 1, 31), date(2024, 2, 29), date(2024, 3, 31)
    ]
    assert result.upcoming_period.due_date == date(2024, 4, 30)


def test_yearly_periods_labelled_by_year():
    result = compute_arrears(date(2022, 3, 1), RentFrequency.yearly, 24000, date(2024, 6, 1))

    assert [p.label for p in result.overdue_periods] == ["2022", "2023", "2024"]
    assert result.total_overdue == Decimal("72000")
    assert result.upcoming_period.label == "2025"


def test_corrupt_due_date_hits_limit():
    with pytest.raises(ArrearsLimitExceededError):
        compute_arrears(date(2000, 1, 1), RentFrequency.monthly, 2000, date(2024, 1, 1), limit=10)


def test_negative_rent_rejected():
    with pytest.raises(NegativeAmountError):
        compute_arrears(date(2024, 1, 5), RentFrequency.monthly, -5, date(2024, 4, 5))


@pytest.mark.parametrize("today, state, days", [
    (date(2024, 4, 10), StandingState.late, 5),
    (date(2024, 4, 5), StandingState.due_soon, 0),
    (date(2024, 4, 1), StandingState.due_soon, -4),
    (date(2024, 3, 30), StandingState.due_soon, -6),
    (date(2024, 3, 29), StandingState.current, -7),
    (date(2024, 3, 1), StandingState.current, -35),
])
def test_classify_standing(today, state, days):
    standing = classify_standing(date(2024, 4, 5), today)

    assert standing.state == state
    assert standing.days_overdue == days
