from datetime import date, timedelta
from decimal import Decimal
from typing import Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from rentcycle.config import config
from rentcycle.database.models import (
    Property, Tenancy, Payment, TenancyStatus, PropertyStatus, RentFrequency
)
from rentcycle.utils.dates import add_months, safe_date


class OwnerStats:
    def __init__(self, total_units, vacant_units, active_tenancies, previous_active_tenancies,
                 overdue_tenancies, expected_monthly_rent, advance_held,
                 monthly_collection, last_month_collection, expiring_leases):
        self.total_units = int(total_units or 0)
        self.vacant_units = int(vacant_units or 0)
        self.active_tenancies = int(active_tenancies or 0)
        self.overdue_tenancies = int(overdue_tenancies or 0)
        self.expected_monthly_rent = Decimal(str(expected_monthly_rent or 0))
        self.advance_held = Decimal(str(advance_held or 0))
        self.monthly_collection = Decimal(str(monthly_collection or 0))
        self.last_month_collection = Decimal(str(last_month_collection or 0))
        self.expiring_leases = int(expiring_leases or 0)

        # Growth in percent, 0 when there is nothing to compare against
        self.collection_growth = _growth(self.monthly_collection, self.last_month_collection)
        self.tenancy_growth = _growth(Decimal(self.active_tenancies), Decimal(int(previous_active_tenancies or 0)))


def _growth(current: Decimal, previous: Decimal) -> Decimal:
    if previous <= 0:
        return Decimal("0")
    return ((current - previous) / previous * 100).quantize(Decimal("0.01"))


async def get_owner_stats(
    session: AsyncSession,
    owner_id: int,
    today: Optional[date] = None
) -> OwnerStats:
    """
    Portfolio figures for an owner as of `today`.
    Overdue = active tenancy whose next due date has passed.
    Expiring = active lease ending within EXPIRY_WARNING_DAYS (exclusive of today).
    """
    if today is None:
        today = date.today()

    month_start = safe_date(today.year, today.month, 1)
    next_month_start = add_months(month_start, 1)
    last_month_start = add_months(month_start, -1)
    month_ago = add_months(today, -1)

    # 1. Units
    units_stmt = (
        select(
            func.count(Property.id),
            func.count(Property.id).filter(Property.status == PropertyStatus.vacant.value)
        )
        .where(Property.owner_id == owner_id)
    )
    total_units, vacant_units = (await session.execute(units_stmt)).one()

    # 2. Active tenancies
    active = (Tenancy.owner_id == owner_id, Tenancy.status == TenancyStatus.active.value)

    tenancy_stmt = (
        select(
            func.count(Tenancy.id),
            func.count(Tenancy.id).filter(Tenancy.start_date <= month_ago),
            func.count(Tenancy.id).filter(Tenancy.next_due_date < today),
            func.coalesce(func.sum(Tenancy.rent_amount).filter(
                Tenancy.rent_frequency == RentFrequency.monthly.value
            ), 0),
            func.coalesce(func.sum(Tenancy.advance_balance), 0),
            func.count(Tenancy.id).filter(
                Tenancy.end_date > today,
                Tenancy.end_date <= today + timedelta(days=config.EXPIRY_WARNING_DAYS)
            )
        )
        .where(*active)
    )
    (active_count, previous_active, overdue, expected_rent,
     advance_held, expiring) = (await session.execute(tenancy_stmt)).one()

    # 3. Collections (cash received, by payment date)
    collection_stmt = (
        select(
            func.coalesce(func.sum(Payment.amount).filter(
                Payment.payment_date >= month_start, Payment.payment_date < next_month_start
            ), 0),
            func.coalesce(func.sum(Payment.amount).filter(
                Payment.payment_date >= last_month_start, Payment.payment_date < month_start
            ), 0)
        )
        .where(Payment.owner_id == owner_id)
    )
    monthly_collection, last_month_collection = (await session.execute(collection_stmt)).one()

    return OwnerStats(
        total_units=total_units,
        vacant_units=vacant_units,
        active_tenancies=active_count,
        previous_active_tenancies=previous_active,
        overdue_tenancies=overdue,
        expected_monthly_rent=expected_rent,
        advance_held=advance_held,
        monthly_collection=monthly_collection,
        last_month_collection=last_month_collection,
        expiring_leases=expiring
    )
