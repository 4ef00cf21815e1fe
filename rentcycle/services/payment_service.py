"""
Payment reconciliation: apply cash and an advance draw against a tenancy.

Cash and advance are allocated FIFO over the settled periods, oldest first.
Whatever cash exceeds the rent of the settled periods is banked into the
advance balance, and next_due_date moves forward by exactly the number of
periods settled, counted from its current value (not from today).
"""
import logging
from datetime import date
from decimal import Decimal
from typing import List, NamedTuple, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from rentcycle.config import config
from rentcycle.database.models import Payment, PaymentMethod
from rentcycle.errors import (
    InsufficientAdvanceError, NoPeriodsSelectedError,
    StaleTenancyStateError, TenancyEndedError
)
from rentcycle.schemas.tenancy import TenancyState, PaymentRecord
from rentcycle.schemas.validation import validate_amount, validate_date
from rentcycle.services.repository import TenancyRepository
from rentcycle.utils.clock import system_clock
from rentcycle.utils.dates import add_periods, period_label


class ReconciliationResult(NamedTuple):
    advance_balance: Decimal
    next_due_date: date
    payments: List[PaymentRecord]

    def as_updates(self) -> dict:
        return {
            "advance_balance": self.advance_balance,
            "next_due_date": self.next_due_date
        }


def upcoming_labels(tenancy: TenancyState, count: int) -> List[str]:
    """Labels of the next `count` unpaid periods, starting at next_due_date."""
    return [
        period_label(add_periods(tenancy.next_due_date, tenancy.rent_frequency, i), tenancy.rent_frequency)
        for i in range(count)
    ]


def reconcile_payment(
    tenancy: TenancyState,
    amount_paid,
    advance_draw=0,
    periods_settled: int = 1,
    payment_date: Optional[date] = None,
    period_labels: Optional[Sequence[str]] = None,
    method: PaymentMethod = PaymentMethod.cash,
    notes: Optional[str] = None,
    transaction_id: Optional[str] = None
) -> ReconciliationResult:
    """
    Compute the tenancy's new advance balance and due date for a payment.

    Args:
        tenancy: Snapshot the payment applies to
        amount_paid: Cash received
        advance_draw: Part of the advance balance applied to this payment
        periods_settled: Number of billing periods paid (ignored if period_labels given)
        payment_date: Date stamped on every record (default: today)
        period_labels: Explicitly selected periods, e.g. from compute_arrears
        notes: Extra note appended to every record

    Returns:
        ReconciliationResult with one PaymentRecord per settled period

    Raises:
        NegativeAmountError: amount_paid or advance_draw below zero
        InsufficientAdvanceError: advance_draw above the advance balance
        NoPeriodsSelectedError: Nothing selected to pay
        TenancyEndedError: Tenancy is no longer active
    """
    if not tenancy.is_active:
        raise TenancyEndedError(f"Tenancy {tenancy.id} has ended; payments cannot move its due date")

    cash = validate_amount(amount_paid, "amount_paid")
    draw = validate_amount(advance_draw, "advance_draw")
    payment_date = validate_date(payment_date or date.today(), "payment_date")

    if draw > tenancy.advance_balance:
        raise InsufficientAdvanceError(draw, tenancy.advance_balance)

    if period_labels is not None:
        labels = list(period_labels)
    else:
        if periods_settled is None or periods_settled < 1:
            raise NoPeriodsSelectedError("Select at least one period to pay")
        labels = upcoming_labels(tenancy, periods_settled)

    if not labels:
        raise NoPeriodsSelectedError("Select at least one period to pay")

    count = len(labels)
    rent = tenancy.rent_amount

    surplus = max(Decimal("0"), cash - rent * count)
    new_advance = tenancy.advance_balance - draw + surplus

    records = []
    cash_left = cash
    draw_left = draw
    for i, label in enumerate(labels):
        is_last = i == count - 1

        cash_part = cash_left if is_last else min(cash_left, rent)
        cash_left -= cash_part

        draw_part = draw_left if is_last else min(draw_left, max(Decimal("0"), rent - cash_part))
        draw_left -= draw_part

        note = f"Rent payment for {label}"
        if notes:
            note = f"{note}. {notes}"

        records.append(PaymentRecord(
            tenancy_id=tenancy.id,
            amount=cash_part,
            payment_date=payment_date,
            advance_used=draw_part,
            notes=note,
            period_label=label,
            method=PaymentMethod(method),
            transaction_id=transaction_id
        ))

    return ReconciliationResult(
        advance_balance=new_advance,
        next_due_date=add_periods(tenancy.next_due_date, tenancy.rent_frequency, count),
        payments=records
    )


async def record_payment(
    session: AsyncSession,
    tenancy_id: int,
    amount_paid,
    advance_draw=0,
    periods_settled: int = 1,
    period_labels: Optional[Sequence[str]] = None,
    method: PaymentMethod = PaymentMethod.cash,
    notes: Optional[str] = None,
    transaction_id: Optional[str] = None,
    payment_date: Optional[date] = None,
    clock=system_clock
) -> List[Payment]:
    """
    Reconcile a payment and persist it.

    The tenancy update and the payment rows go in one transaction. A stale
    save reloads the tenancy, recomputes and retries (SAVE_RETRY_LIMIT times)
    before StaleTenancyStateError reaches the caller. Explicitly selected
    period_labels are not recomputed: once they stop matching the stored
    timeline the payment is refused as stale.
    """
    repo = TenancyRepository(session)
    payment_date = payment_date or clock.today()

    attempt = 0
    while True:
        tenancy = await repo.load(tenancy_id)

        # Selected periods must still be the next unpaid ones
        if period_labels:
            expected = upcoming_labels(tenancy, len(period_labels))
            if list(period_labels) != expected:
                logging.warning(
                    f"Tenancy {tenancy_id} now owes {', '.join(expected)}, "
                    f"not the selected {', '.join(period_labels)}"
                )
                raise StaleTenancyStateError(tenancy_id, tenancy.next_due_date)

        result = reconcile_payment(
            tenancy,
            amount_paid,
            advance_draw=advance_draw,
            periods_settled=periods_settled,
            payment_date=payment_date,
            period_labels=period_labels,
            method=method,
            notes=notes,
            transaction_id=transaction_id
        )

        try:
            await repo.save_if_unchanged(tenancy_id, tenancy.next_due_date, result.as_updates())
            payments = [await repo.append_payment(record) for record in result.payments]
            await session.commit()
        except StaleTenancyStateError:
            await session.rollback()
            attempt += 1
            if attempt > config.SAVE_RETRY_LIMIT:
                logging.error(f"Giving up on payment for tenancy {tenancy_id} after {attempt} stale saves")
                raise
            logging.info(f"Tenancy {tenancy_id} changed concurrently, retrying payment ({attempt})")
            continue
        except Exception:
            await session.rollback()
            raise

        logging.info(
            f"Recorded {len(payments)} payment(s) for tenancy {tenancy_id}. "
            f"Next due: {result.next_due_date}, advance: {result.advance_balance}"
        )
        return payments


async def get_payment_history(session: AsyncSession, tenancy_id: int) -> List[Payment]:
    """Payments of a tenancy, oldest first"""
    return await TenancyRepository(session).list_payments(tenancy_id)
