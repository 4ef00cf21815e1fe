import logging
import re
from datetime import date
from decimal import Decimal
from typing import List, NamedTuple, Optional, Sequence, Tuple

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from rentcycle.database.models import (
    Property, Tenancy, Payment, TenancyStatus, PropertyStatus, RentFrequency, PaymentMethod
)
from rentcycle.errors import PropertyOccupiedError, TenancyNotFoundError
from rentcycle.schemas.tenancy import TenancyState, PaymentRecord
from rentcycle.schemas.validation import validate_amount, validate_date, validate_due_day
from rentcycle.services.due_date_service import compute_initial_due_date
from rentcycle.services.repository import TenancyRepository
from rentcycle.utils.dates import MONTH_NAMES, add_months, month_label, round_half_up, safe_date, to_date


async def create_tenancy(
    session: AsyncSession,
    property_id: int,
    tenant_id: int,
    start_date: date,
    rent_amount=None,
    rent_frequency: Optional[RentFrequency] = None,
    advance_balance=0,
    security_deposit=None,
    end_date: Optional[date] = None
) -> Tuple[Tenancy, Optional[Payment]]:
    """
    Create a new tenancy (tenant moves in).

    Rent terms default to the unit's. The first due date comes from the
    unit's due day; a mid-month start records the prorated charge for the
    partial month as the first payment.
    Uses a row-level lock on the unit to prevent two concurrent move-ins.

    Returns:
        (tenancy, prorated payment or None)
    """
    lock_stmt = (
        select(Property)
        .where(Property.id == property_id)
        .with_for_update()
    )
    lock_result = await session.execute(lock_stmt)
    unit = lock_result.scalar_one_or_none()

    if not unit:
        raise ValueError(f"Property ID {property_id} not found")

    check_stmt = select(Tenancy).where(
        Tenancy.property_id == property_id,
        Tenancy.status == TenancyStatus.active.value
    )
    check_result = await session.execute(check_stmt)
    existing = check_result.scalar_one_or_none()

    if existing:
        raise PropertyOccupiedError(
            f"Property {property_id} already has active tenancy {existing.id} "
            f"for tenant {existing.tenant_id}. End it first."
        )

    start_date = validate_date(start_date, "start_date")
    if end_date is not None and validate_date(end_date, "end_date") < start_date:
        raise ValueError(f"End date {end_date} is before start date {start_date}")

    rent = validate_amount(rent_amount if rent_amount is not None else unit.rent_amount, "rent_amount")
    frequency = RentFrequency(rent_frequency or unit.rent_frequency)
    deposit = validate_amount(
        security_deposit if security_deposit is not None else (unit.security_deposit or 0),
        "security_deposit"
    )
    advance = validate_amount(advance_balance, "advance_balance")

    initial = compute_initial_due_date(start_date, frequency, unit.due_day, rent)

    tenancy = Tenancy(
        property_id=unit.id,
        tenant_id=tenant_id,
        owner_id=unit.owner_id,
        rent_amount=rent,
        rent_frequency=frequency.value,
        start_date=start_date,
        end_date=end_date,
        next_due_date=initial.next_due_date,
        advance_balance=advance,
        security_deposit=deposit,
        status=TenancyStatus.active.value,
        renewal_count=0,
        original_rent=rent
    )
    session.add(tenancy)
    await session.flush()  # Get tenancy.id

    prorated_payment = None
    if initial.is_prorated and initial.prorated_amount > 0:
        share = round_half_up(initial.prorated_amount * 100 / rent)
        prorated_payment = await TenancyRepository(session).append_payment(PaymentRecord(
            tenancy_id=tenancy.id,
            amount=initial.prorated_amount,
            payment_date=start_date,
            notes=f"Prorated rent for {initial.period_label} ({share}% of monthly rent)",
            period_label=initial.period_label,
            method=PaymentMethod.cash
        ))

    await session.execute(
        update(Property)
        .where(Property.id == property_id)
        .values(status=PropertyStatus.occupied.value)
    )

    await session.commit()

    logging.info(
        f"Tenancy {tenancy.id} created for property {property_id}, first due {initial.next_due_date}"
        + (f", prorated {initial.prorated_amount}" if prorated_payment else "")
    )
    return tenancy, prorated_payment


async def end_tenancy(session: AsyncSession, tenancy_id: int) -> Tenancy:
    """
    End a tenancy (tenant moves out) and free the unit.
    Uses row-level lock to prevent concurrent ending; ending twice is a no-op.
    """
    lock_stmt = (
        select(Tenancy)
        .where(Tenancy.id == tenancy_id)
        .with_for_update()
    )
    result = await session.execute(lock_stmt)
    tenancy = result.scalar_one_or_none()

    if not tenancy:
        raise TenancyNotFoundError(f"Tenancy {tenancy_id} not found")

    # IDEMPOTENCY CHECK
    if tenancy.status == TenancyStatus.ended.value:
        logging.info(f"Tenancy {tenancy_id} already ended")
        return tenancy

    tenancy.status = TenancyStatus.ended.value

    await session.execute(
        update(Property)
        .where(Property.id == tenancy.property_id)
        .values(status=PropertyStatus.vacant.value)
    )

    await session.commit()
    logging.info(f"Tenancy {tenancy_id} ended")
    return tenancy


async def get_active_tenancies(session: AsyncSession, owner_id: Optional[int] = None) -> List[Tenancy]:
    stmt = select(Tenancy).where(Tenancy.status == TenancyStatus.active.value)
    if owner_id:
        stmt = stmt.where(Tenancy.owner_id == owner_id)
    result = await session.execute(stmt.order_by(Tenancy.next_due_date))
    return list(result.scalars().all())


# --- Month-by-month breakdown ---

class MonthBreakdown(NamedTuple):
    label: str  # "January 2024"
    due_date: date
    expected: Decimal
    paid: Decimal
    is_paid: bool
    is_overdue: bool
    payments: list


class Outstanding(NamedTuple):
    amount: Decimal
    months: List[MonthBreakdown]


_MONTH_LABEL = re.compile(r"\b(?:%s) \d{4}\b" % "|".join(MONTH_NAMES))


def _named_month(payment) -> Optional[str]:
    """Month a payment says it is for: its period label, else the first month named in its note."""
    label = getattr(payment, "period_label", None)
    if label and _MONTH_LABEL.fullmatch(label):
        return label
    match = _MONTH_LABEL.search(getattr(payment, "notes", None) or "")
    return match.group(0) if match else None


def _payment_matches(payment, label: str, month_start: date) -> bool:
    """
    A payment belongs to the month it names. Only a payment naming no month
    (e.g. prorated rent) falls back to the month it was paid in, so no
    payment counts twice.
    """
    named = _named_month(payment)
    if named:
        return named == label
    paid_on = payment.payment_date
    return paid_on.year == month_start.year and paid_on.month == month_start.month


def get_monthly_breakdown(
    tenancy: TenancyState,
    payments: Sequence,
    due_day: int,
    today: date,
    limit: int = 12
) -> List[MonthBreakdown]:
    """
    Month-by-month paid/overdue view of a monthly tenancy, newest month first.

    Works forward from the start date. The first month's due date never
    precedes the start date. Only the most recent `limit` months are kept.
    Payments are duck-typed: anything with amount, payment_date and notes.
    """
    if RentFrequency(tenancy.rent_frequency) != RentFrequency.monthly:
        return []

    due_day = validate_due_day(due_day)
    today = to_date(today)
    start = tenancy.start_date
    rent = tenancy.rent_amount

    breakdown = []
    month_start = safe_date(start.year, start.month, 1)
    last_month = safe_date(today.year, today.month, 1)

    while month_start <= last_month:
        label = month_label(month_start)
        due_date = max(safe_date(month_start.year, month_start.month, due_day), start)

        month_payments = [p for p in payments if _payment_matches(p, label, month_start)]
        paid = sum((Decimal(str(p.amount)) for p in month_payments), Decimal("0"))
        is_paid = paid >= rent

        breakdown.append(MonthBreakdown(
            label=label,
            due_date=due_date,
            expected=rent,
            paid=paid,
            is_paid=is_paid,
            is_overdue=not is_paid and today > due_date,
            payments=month_payments
        ))
        month_start = add_months(month_start, 1)

    return list(reversed(breakdown[-limit:]))


def calculate_outstanding(breakdown: Sequence[MonthBreakdown]) -> Outstanding:
    overdue = [m for m in breakdown if m.is_overdue]
    amount = sum((m.expected - m.paid for m in overdue), Decimal("0"))
    return Outstanding(amount=amount, months=overdue)
