from datetime import date
from decimal import Decimal
from typing import Optional, NamedTuple

from rentcycle.database.models import (
    Tenancy, RentFrequency, TenancyStatus, PaymentMethod
)


class TenancyState(NamedTuple):
    """Snapshot of a tenancy's rent cycle fields, the input to every calculator"""
    id: Optional[int]
    property_id: int
    tenant_id: int
    rent_amount: Decimal
    rent_frequency: RentFrequency
    start_date: date
    next_due_date: date
    advance_balance: Decimal = Decimal("0")
    security_deposit: Decimal = Decimal("0")
    end_date: Optional[date] = None
    status: TenancyStatus = TenancyStatus.active
    renewal_count: int = 0
    original_rent: Optional[Decimal] = None

    @property
    def is_active(self) -> bool:
        return TenancyStatus(self.status) == TenancyStatus.active

    @classmethod
    def from_model(cls, tenancy: Tenancy) -> "TenancyState":
        return cls(
            id=tenancy.id,
            property_id=tenancy.property_id,
            tenant_id=tenancy.tenant_id,
            rent_amount=Decimal(str(tenancy.rent_amount)),
            rent_frequency=RentFrequency(tenancy.rent_frequency),
            start_date=tenancy.start_date,
            next_due_date=tenancy.next_due_date,
            advance_balance=Decimal(str(tenancy.advance_balance or 0)),
            security_deposit=Decimal(str(tenancy.security_deposit or 0)),
            end_date=tenancy.end_date,
            status=TenancyStatus(tenancy.status),
            renewal_count=tenancy.renewal_count or 0,
            original_rent=Decimal(str(tenancy.original_rent)) if tenancy.original_rent is not None else None,
        )


class PaymentRecord(NamedTuple):
    """A payment to append to a tenancy's history. Never edited once stored."""
    tenancy_id: Optional[int]
    amount: Decimal
    payment_date: date
    advance_used: Decimal = Decimal("0")
    notes: Optional[str] = None
    period_label: Optional[str] = None
    method: PaymentMethod = PaymentMethod.cash
    transaction_id: Optional[str] = None
