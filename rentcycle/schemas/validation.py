from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, Field, field_validator, ValidationError

from rentcycle.errors import InvalidDateError, NegativeAmountError

class AmountModel(BaseModel):
    amount: Decimal = Field(ge=0, description="Non-negative amount")

    @field_validator('amount', mode='before')
    def parse_decimal(cls, v):
        if isinstance(v, str):
            # Replace common separators
            v = v.replace(',', '').replace(' ', '')
        if isinstance(v, float):
            v = str(v)
        return v

class DayOfMonthModel(BaseModel):
    day: int = Field(ge=1, le=31, description="Day of month (1-31)")

    @field_validator('day', mode='before')
    def parse_int(cls, v):
        if isinstance(v, str):
            assert v.isdigit(), "Must be a number"
        return int(v)

class RenewalTermsModel(BaseModel):
    duration_years: int = Field(gt=0, description="Renewal length in whole years")

class CalendarDateModel(BaseModel):
    value: date

    @field_validator('value', mode='before')
    def reject_datetime(cls, v):
        # Time of day is meaningless for start dates
        if isinstance(v, datetime):
            return v.date()
        return v


def validate_amount(value, field: str = "amount") -> Decimal:
    """Parse a monetary input, raising NegativeAmountError for anything below zero."""
    try:
        return AmountModel(amount=value).amount
    except ValidationError as e:
        raise NegativeAmountError(f"{field} must be a non-negative amount, got {value!r}") from e


def validate_due_day(value) -> int:
    try:
        return DayOfMonthModel(day=value).day
    except (ValidationError, ValueError, TypeError) as e:
        raise InvalidDateError(f"Due day must be between 1 and 31, got {value!r}") from e


def validate_duration(value) -> int:
    try:
        return RenewalTermsModel(duration_years=value).duration_years
    except ValidationError as e:
        raise InvalidDateError(f"Renewal duration must be a positive number of years, got {value!r}") from e


def validate_date(value, field: str = "date") -> date:
    try:
        return CalendarDateModel(value=value).value
    except ValidationError as e:
        raise InvalidDateError(f"{field} is not a valid calendar date: {value!r}") from e
