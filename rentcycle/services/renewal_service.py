import logging
from datetime import date
from decimal import Decimal
from typing import NamedTuple, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from rentcycle.config import config
from rentcycle.errors import NegativeAmountError, StaleTenancyStateError, TenancyEndedError
from rentcycle.schemas.tenancy import TenancyState
from rentcycle.schemas.validation import validate_amount, validate_date, validate_duration
from rentcycle.services.repository import TenancyRepository
from rentcycle.utils.clock import system_clock
from rentcycle.utils.dates import add_periods, add_years, round_half_up


class RenewalResult(NamedTuple):
    rent_amount: Decimal
    end_date: date
    next_due_date: date
    advance_balance: Decimal
    renewal_count: int

    def as_updates(self) -> dict:
        return self._asdict()

    def cumulative_increment_percent(self, original_rent) -> Decimal:
        """Total rent increase since the tenancy started, in percent (2 decimals)."""
        original = Decimal(str(original_rent))
        if original == 0:
            return Decimal("0")
        return ((self.rent_amount - original) / original * 100).quantize(Decimal("0.01"))


def renew_lease(
    tenancy: TenancyState,
    duration_years: int,
    apply_increment: bool = True,
    increment_percent=Decimal("10"),
    additional_advance=0,
    today: Optional[date] = None
) -> RenewalResult:
    """
    Extend a lease by whole years.

    The pending billing cycle is unaffected by the new terms, so next_due_date
    always moves exactly one step, whatever the duration. original_rent is
    left alone.

    Raises:
        InvalidDateError: duration_years is not a positive integer
        NegativeAmountError: Negative increment or additional advance
        TenancyEndedError: Tenancy is no longer active
    """
    if not tenancy.is_active:
        raise TenancyEndedError(f"Tenancy {tenancy.id} has ended and cannot be renewed")

    duration_years = validate_duration(duration_years)
    additional = validate_amount(additional_advance, "additional_advance")
    today = validate_date(today or date.today(), "today")

    rent = tenancy.rent_amount
    if apply_increment:
        percent = validate_amount(increment_percent, "increment_percent")
        rent = round_half_up(rent * (1 + percent / 100))

    if rent <= 0:
        raise NegativeAmountError(f"Renewed rent must be positive, got {rent}")

    base_end = tenancy.end_date or today

    return RenewalResult(
        rent_amount=rent,
        end_date=add_years(base_end, duration_years),
        next_due_date=add_periods(tenancy.next_due_date, tenancy.rent_frequency, 1),
        advance_balance=tenancy.advance_balance + additional,
        renewal_count=tenancy.renewal_count + 1
    )


async def apply_renewal(
    session: AsyncSession,
    tenancy_id: int,
    duration_years: int,
    apply_increment: bool = True,
    increment_percent=Decimal("10"),
    additional_advance=0,
    clock=system_clock
) -> RenewalResult:
    """Renew and persist, retrying once on a concurrent change like record_payment."""
    repo = TenancyRepository(session)

    attempt = 0
    while True:
        tenancy = await repo.load(tenancy_id)
        result = renew_lease(
            tenancy,
            duration_years,
            apply_increment=apply_increment,
            increment_percent=increment_percent,
            additional_advance=additional_advance,
            today=clock.today()
        )

        try:
            await repo.save_if_unchanged(tenancy_id, tenancy.next_due_date, result.as_updates())
            await session.commit()
        except StaleTenancyStateError:
            await session.rollback()
            attempt += 1
            if attempt > config.SAVE_RETRY_LIMIT:
                logging.error(f"Giving up on renewal of tenancy {tenancy_id} after {attempt} stale saves")
                raise
            logging.info(f"Tenancy {tenancy_id} changed concurrently, retrying renewal ({attempt})")
            continue
        except Exception:
            await session.rollback()
            raise

        logging.info(
            f"Tenancy {tenancy_id} renewed #{result.renewal_count}: rent {tenancy.rent_amount} -> "
            f"{result.rent_amount}, ends {result.end_date}"
        )
        return result
