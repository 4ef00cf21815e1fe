import enum
from datetime import datetime, date
from decimal import Decimal
from typing import Optional, List
from sqlalchemy import String, ForeignKey, Integer, Numeric, DateTime, Text, DATE, CheckConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func
from rentcycle.config import config
from rentcycle.database.core import Base

# Enums
class RentFrequency(str, enum.Enum):
    monthly = "monthly"
    yearly = "yearly"

class TenancyStatus(str, enum.Enum):
    active = "active"
    ended = "ended"

class PropertyStatus(str, enum.Enum):
    vacant = "vacant"
    occupied = "occupied"

class PropertyType(str, enum.Enum):
    apartment = "apartment"
    house = "house"
    condo = "condo"
    commercial = "commercial"
    shop = "shop"
    flat = "flat"
    land = "land"
    warehouse = "warehouse"
    other = "other"

class PaymentMethod(str, enum.Enum):
    cash = "cash"
    bank_transfer = "bank_transfer"
    cheque = "cheque"
    upi = "upi"
    online = "online"


# 3.1 ParentProperty (building / compound holding units)
class ParentProperty(Base):
    __tablename__ = "parent_properties"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    owner_id: Mapped[int] = mapped_column(Integer, index=True)  # Owned by the auth service
    name: Mapped[str] = mapped_column(String)
    address: Mapped[str] = mapped_column(String)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    units: Mapped[List["Property"]] = relationship(back_populates="parent", cascade="all, delete-orphan")


# 3.2 Property (rentable unit)
class Property(Base):
    __tablename__ = "properties"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    parent_property_id: Mapped[int] = mapped_column(ForeignKey("parent_properties.id", ondelete="CASCADE"))
    owner_id: Mapped[int] = mapped_column(Integer, index=True)

    unit_name: Mapped[str] = mapped_column(String)
    unit_details: Mapped[Optional[str]] = mapped_column(Text)
    type: Mapped[PropertyType] = mapped_column(String, default=PropertyType.flat.value)

    # Seed values for new tenancies only
    rent_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    rent_frequency: Mapped[RentFrequency] = mapped_column(String, default=RentFrequency.monthly.value)
    due_day: Mapped[int] = mapped_column(Integer, default=config.DEFAULT_DUE_DAY)
    security_deposit: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)

    status: Mapped[PropertyStatus] = mapped_column(String, default=PropertyStatus.vacant.value)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        CheckConstraint("due_day BETWEEN 1 AND 31", name="ck_property_due_day"),
    )

    parent: Mapped["ParentProperty"] = relationship(back_populates="units")
    tenancies: Mapped[List["Tenancy"]] = relationship(back_populates="unit")


# 3.3 Tenancy
class Tenancy(Base):
    __tablename__ = "tenancies"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    property_id: Mapped[int] = mapped_column(ForeignKey("properties.id", ondelete="CASCADE"))
    tenant_id: Mapped[int] = mapped_column(Integer, index=True)  # Profile in the auth service
    owner_id: Mapped[int] = mapped_column(Integer, index=True)

    rent_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    rent_frequency: Mapped[RentFrequency] = mapped_column(String, default=RentFrequency.monthly.value)

    start_date: Mapped[date] = mapped_column(DATE)
    end_date: Mapped[Optional[date]] = mapped_column(DATE, nullable=True)
    # Single pointer into the billing timeline; also the optimistic lock key
    next_due_date: Mapped[date] = mapped_column(DATE)

    advance_balance: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    security_deposit: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)

    status: Mapped[TenancyStatus] = mapped_column(String, default=TenancyStatus.active.value)
    renewal_count: Mapped[int] = mapped_column(Integer, default=0)
    original_rent: Mapped[Decimal] = mapped_column(Numeric(12, 2))

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint("advance_balance >= 0", name="ck_tenancy_advance_non_negative"),
        CheckConstraint("next_due_date >= start_date", name="ck_tenancy_due_after_start"),
        Index("ix_tenancies_status_next_due", "status", "next_due_date"),
    )

    unit: Mapped["Property"] = relationship(back_populates="tenancies")
    payments: Mapped[List["Payment"]] = relationship(back_populates="tenancy")


# 3.4 Payment (append-only)
class Payment(Base):
    __tablename__ = "payments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    tenancy_id: Mapped[int] = mapped_column(ForeignKey("tenancies.id", ondelete="CASCADE"), index=True)
    property_id: Mapped[int] = mapped_column(ForeignKey("properties.id", ondelete="CASCADE"))
    tenant_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    owner_id: Mapped[int] = mapped_column(Integer, index=True)

    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    payment_date: Mapped[date] = mapped_column("date", DATE)
    method: Mapped[PaymentMethod] = mapped_column(String, default=PaymentMethod.cash.value)
    transaction_id: Mapped[Optional[str]] = mapped_column(String)
    advance_used: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    period_label: Mapped[Optional[str]] = mapped_column(String)  # "January 2024", "2024" or a partial month
    notes: Mapped[Optional[str]] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    tenancy: Mapped["Tenancy"] = relationship(back_populates="payments")

    @property
    def receipt_number(self) -> str:
        year = self.created_at.year if self.created_at else self.payment_date.year
        return f"REC-{year}-{self.id:04d}"
