"""
Data-access adapter for tenancies and their payment history.

Rent cycle results are saved with a conditional UPDATE keyed on the
tenancy's next_due_date (optimistic concurrency): two reconciliations
computed from the same snapshot cannot both be written.
"""
import logging
from datetime import date
from typing import Any, Dict, List

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from rentcycle.database.models import Tenancy, Payment, TenancyStatus, PaymentMethod
from rentcycle.errors import StaleTenancyStateError, TenancyNotFoundError
from rentcycle.schemas.tenancy import TenancyState, PaymentRecord

# Columns a rent cycle calculation is allowed to write
RENT_CYCLE_FIELDS = {
    "rent_amount", "end_date", "next_due_date",
    "advance_balance", "renewal_count", "status"
}


class TenancyRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def load(self, tenancy_id: int) -> TenancyState:
        """Fresh snapshot of a tenancy, bypassing any stale identity-map copy."""
        stmt = (
            select(Tenancy)
            .where(Tenancy.id == tenancy_id)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        tenancy = result.scalar_one_or_none()

        if not tenancy:
            raise TenancyNotFoundError(f"Tenancy ID {tenancy_id} not found")

        return TenancyState.from_model(tenancy)

    async def save_if_unchanged(
        self,
        tenancy_id: int,
        expected_next_due_date: date,
        updates: Dict[str, Any]
    ) -> None:
        """
        Write rent cycle updates only if the stored next_due_date still matches
        the snapshot the calculation was based on. Does not commit.

        Raises:
            StaleTenancyStateError: Row changed (or ended) since it was read
        """
        unknown = set(updates) - RENT_CYCLE_FIELDS
        if unknown:
            raise ValueError(f"Not a rent cycle field: {', '.join(sorted(unknown))}")

        stmt = (
            update(Tenancy)
            .where(
                Tenancy.id == tenancy_id,
                Tenancy.next_due_date == expected_next_due_date,
                Tenancy.status == TenancyStatus.active.value
            )
            .values(**updates)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)

        if result.rowcount != 1:
            logging.warning(
                f"Stale save for tenancy {tenancy_id}: expected next due {expected_next_due_date}"
            )
            raise StaleTenancyStateError(tenancy_id, expected_next_due_date)

    async def append_payment(self, record: PaymentRecord) -> Payment:
        """Insert a payment row. Payments are never updated afterwards. Does not commit."""
        tenancy = await self.session.get(Tenancy, record.tenancy_id)
        if not tenancy:
            raise TenancyNotFoundError(f"Tenancy ID {record.tenancy_id} not found")

        payment = Payment(
            tenancy_id=tenancy.id,
            property_id=tenancy.property_id,
            tenant_id=tenancy.tenant_id,
            owner_id=tenancy.owner_id,
            amount=record.amount,
            payment_date=record.payment_date,
            method=PaymentMethod(record.method).value,
            transaction_id=record.transaction_id,
            advance_used=record.advance_used,
            period_label=record.period_label,
            notes=record.notes
        )
        self.session.add(payment)
        await self.session.flush()  # Get payment.id
        return payment

    async def list_payments(self, tenancy_id: int) -> List[Payment]:
        """Payment history, oldest first"""
        stmt = (
            select(Payment)
            .where(Payment.tenancy_id == tenancy_id)
            .order_by(Payment.payment_date, Payment.id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
