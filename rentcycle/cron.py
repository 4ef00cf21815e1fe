import asyncio
import logging
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import List, NamedTuple, Optional

from sqlalchemy import select

from rentcycle.config import config
from rentcycle.database.core import AsyncSessionLocal
from rentcycle.database.models import Tenancy, TenancyStatus
from rentcycle.services.arrears_service import compute_arrears, classify_standing, StandingState
from rentcycle.utils.clock import system_clock
from rentcycle.utils.dates import format_date


class RentAlert(NamedTuple):
    tenancy_id: int
    owner_id: int
    kind: str  # "overdue", "due_soon" or "lease_expiring"
    message: str
    amount: Optional[Decimal] = None


def check_lease_expiry(end_date: Optional[date], today: date) -> Optional[int]:
    """Days left on a lease ending inside the warning window, else None."""
    if end_date is None:
        return None
    days_left = (end_date - today).days
    if 0 < days_left <= config.EXPIRY_WARNING_DAYS:
        return days_left
    return None


async def daily_arrears_job(clock=system_clock, session_factory=AsyncSessionLocal) -> List[RentAlert]:
    """
    Scan active tenancies and report arrears, upcoming dues and expiring leases.
    Read-only: nothing is charged or written here.
    """
    logging.info("Running daily arrears job...")
    today = clock.today()
    alerts: List[RentAlert] = []

    async with session_factory() as session:
        stmt = (
            select(Tenancy)
            .where(Tenancy.status == TenancyStatus.active.value)
            .order_by(Tenancy.next_due_date)
        )
        result = await session.execute(stmt)
        tenancies = result.scalars().all()

        for tenancy in tenancies:
            try:
                # 1. Arrears
                arrears = compute_arrears(
                    tenancy.next_due_date, tenancy.rent_frequency, tenancy.rent_amount, today
                )
                standing = classify_standing(tenancy.next_due_date, today)

                if arrears.is_overdue:
                    labels = ", ".join(p.label for p in arrears.overdue_periods)
                    alerts.append(RentAlert(
                        tenancy.id, tenancy.owner_id, "overdue",
                        f"Tenancy {tenancy.id}: {len(arrears.overdue_periods)} period(s) overdue "
                        f"({labels}), {arrears.total_overdue} outstanding",
                        arrears.total_overdue
                    ))
                elif standing.state == StandingState.due_soon:
                    alerts.append(RentAlert(
                        tenancy.id, tenancy.owner_id, "due_soon",
                        f"Tenancy {tenancy.id}: {arrears.upcoming_period.label} due "
                        f"{format_date(tenancy.next_due_date)}",
                        arrears.rent_amount
                    ))

                # 2. Lease expiry
                days_left = check_lease_expiry(tenancy.end_date, today)
                if days_left is not None:
                    alerts.append(RentAlert(
                        tenancy.id, tenancy.owner_id, "lease_expiring",
                        f"Tenancy {tenancy.id}: lease ends {format_date(tenancy.end_date)} "
                        f"(in {days_left} days)"
                    ))

            except Exception as e:
                logging.error(f"Error processing arrears for tenancy {tenancy.id}: {e}")

    for alert in alerts:
        if alert.kind == "overdue":
            logging.warning(alert.message)
        else:
            logging.info(alert.message)

    logging.info(f"Daily arrears job finished: {len(alerts)} alert(s) for {len(tenancies)} tenancies.")
    return alerts


async def scheduler_loop():
    """Run the job once a day at JOB_HOUR."""
    logging.info("Scheduler started.")

    while True:
        try:
            now = datetime.now()
            today_target = now.replace(hour=config.JOB_HOUR, minute=0, second=0, microsecond=0)

            if now < today_target:
                next_run = today_target
            else:
                next_run = today_target + timedelta(days=1)

            wait_seconds = (next_run - now).total_seconds()

            logging.info(f"Next scheduler job at {next_run} (in {wait_seconds/3600:.1f}h)")

            await asyncio.sleep(wait_seconds)

            await daily_arrears_job()

            # Buffer to skip current minute
            await asyncio.sleep(60)

        except Exception as e:
            logging.error(f"Error in scheduler loop: {e}")
            await asyncio.sleep(60)  # Prevent tight loop on error
