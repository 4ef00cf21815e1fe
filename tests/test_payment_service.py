import pytest
from datetime import date
from decimal import Decimal

from sqlalchemy import update

from rentcycle.database.models import RentFrequency, Tenancy, TenancyStatus, PaymentMethod
from rentcycle.errors import (
    InsufficientAdvanceError, NegativeAmountError, NoPeriodsSelectedError,
    StaleTenancyStateError, TenancyEndedError
)
from rentcycle.schemas.tenancy import TenancyState
from rentcycle.services.payment_service import (
    reconcile_payment, record_payment, get_payment_history
)
from rentcycle.services.repository import TenancyRepository
from rentcycle.services.tenancy_service import create_tenancy
from rentcycle.utils.clock import FixedClock

from conftest import make_unit


def make_state(rent=2000, advance=0, next_due=date(2024, 1, 5),
               frequency=RentFrequency.monthly, status=TenancyStatus.active):
    return TenancyState(
        id=1,
        property_id=1,
        tenant_id=1,
        rent_amount=Decimal(str(rent)),
        rent_frequency=frequency,
        start_date=date(2023, 12, 5),
        next_due_date=next_due,
        advance_balance=Decimal(str(advance)),
        status=status
    )


def test_overpayment_banked_as_advance():
    result = reconcile_payment(make_state(), 2500, payment_date=date(2024, 1, 4))

    assert result.advance_balance == Decimal("500")
    assert result.next_due_date == date(2024, 2, 5)
    assert len(result.payments) == 1

    record = result.payments[0]
    assert record.amount == Decimal("2500")
    assert record.advance_used == 0
    assert record.notes == "Rent payment for January 2024"
    assert record.payment_date == date(2024, 1, 4)


def test_advance_draw_reduces_balance():
    result = reconcile_payment(make_state(advance=1000), 1500, advance_draw=500, payment_date=date(2024, 1, 4))

    assert result.advance_balance == Decimal("500")
    assert result.payments[0].amount == Decimal("1500")
    assert result.payments[0].advance_used == Decimal("500")


def test_draw_above_balance_rejected():
    tenancy = make_state(advance=500)

    with pytest.raises(InsufficientAdvanceError) as exc_info:
        reconcile_payment(tenancy, 1400, advance_draw=600)

    assert exc_info.value.requested == Decimal("600")
    assert exc_info.value.available == Decimal("500")
    # Snapshot untouched
    assert tenancy.advance_balance == Decimal("500")
    assert tenancy.next_due_date == date(2024, 1, 5)


def test_zero_periods_rejected():
    with pytest.raises(NoPeriodsSelectedError):
        reconcile_payment(make_state(), 2000, periods_settled=0)

    with pytest.raises(NoPeriodsSelectedError):
        reconcile_payment(make_state(), 2000, period_labels=[])


def test_negative_amounts_rejected():
    with pytest.raises(NegativeAmountError):
        reconcile_payment(make_state(), -1)

    with pytest.raises(NegativeAmountError):
        reconcile_payment(make_state(advance=100), 2000, advance_draw=-50)


def test_ended_tenancy_rejected():
    with pytest.raises(TenancyEndedError):
        reconcile_payment(make_state(status=TenancyStatus.ended), 2000)


def test_multiple_periods_one_record_each():
    result = reconcile_payment(make_state(), 6000, periods_settled=3, payment_date=date(2024, 3, 10))

    assert result.next_due_date == date(2024, 4, 5)
    assert result.advance_balance == 0
    assert [p.notes for p in result.payments] == [
        "Rent payment for January 2024",
        "Rent payment for February 2024",
        "Rent payment for March 2024",
    ]
    assert all(p.amount == Decimal("2000") for p in result.payments)


def test_multiple_periods_cash_then_advance():
    """Cash covers the oldest periods first, the advance tops up the last one"""
    result = reconcile_payment(make_state(advance=1000), 5000, advance_draw=1000, periods_settled=3)

    assert result.advance_balance == 0
    assert [p.amount for p in result.payments] == [Decimal("2000"), Decimal("2000"), Decimal("1000")]
    assert [p.advance_used for p in result.payments] == [0, 0, Decimal("1000")]
    assert sum(p.amount for p in result.payments) == Decimal("5000")


def test_selected_labels_are_used():
    result = reconcile_payment(
        make_state(), 4000,
        period_labels=["January 2024", "February 2024"],
        method=PaymentMethod.upi,
        notes="Paid via app",
        transaction_id="TXN-77"
    )

    assert result.next_due_date == date(2024, 3, 5)
    assert result.payments[1].notes == "Rent payment for February 2024. Paid via app"
    assert result.payments[1].method == PaymentMethod.upi
    assert result.payments[1].transaction_id == "TXN-77"


def test_yearly_payment_moves_one_year():
    tenancy = make_state(rent=24000, next_due=date(2024, 3, 1), frequency=RentFrequency.yearly)
    result = reconcile_payment(tenancy, 24000)

    assert result.next_due_date == date(2025, 3, 1)
    assert result.payments[0].notes == "Rent payment for 2024"


def test_due_date_moves_from_stored_value_not_today():
    """A payment made months late still settles the oldest period only"""
    result = reconcile_payment(make_state(), 2000, payment_date=date(2024, 6, 20))

    assert result.next_due_date == date(2024, 2, 5)


async def _tenancy(session, advance=0):
    unit = await make_unit(session, rent_amount=2000)
    tenancy, _ = await create_tenancy(session, unit.id, tenant_id=7, start_date=date(2024, 1, 5),
                                      advance_balance=advance)
    return tenancy.id


@pytest.mark.asyncio
async def test_record_payment_persists(async_session):
    tenancy_id = await _tenancy(async_session)

    payments = await record_payment(async_session, tenancy_id, 2500, clock=FixedClock(date(2024, 1, 6)))

    assert len(payments) == 1
    assert payments[0].amount == Decimal("2500")
    assert payments[0].payment_date == date(2024, 1, 6)
    assert payments[0].owner_id == 1

    await async_session.refresh(payments[0])
    assert payments[0].period_label == "January 2024"

    state = await TenancyRepository(async_session).load(tenancy_id)
    assert state.next_due_date == date(2024, 2, 5)
    assert state.advance_balance == Decimal("500")

    history = await get_payment_history(async_session, tenancy_id)
    assert [p.id for p in history] == [payments[0].id]


@pytest.mark.asyncio
async def test_record_payment_insufficient_advance_writes_nothing(async_session):
    tenancy_id = await _tenancy(async_session, advance=500)

    with pytest.raises(InsufficientAdvanceError):
        await record_payment(async_session, tenancy_id, 1500, advance_draw=600)

    state = await TenancyRepository(async_session).load(tenancy_id)
    assert state.advance_balance == Decimal("500")
    assert state.next_due_date == date(2024, 1, 5)
    assert await get_payment_history(async_session, tenancy_id) == []


@pytest.mark.asyncio
async def test_stale_save_is_retried(async_session, monkeypatch):
    tenancy_id = await _tenancy(async_session)

    original = TenancyRepository.save_if_unchanged
    calls = []

    async def flaky_save(self, tenancy_id, expected_next_due_date, updates):
        calls.append(expected_next_due_date)
        if len(calls) == 1:
            raise StaleTenancyStateError(tenancy_id, expected_next_due_date)
        return await original(self, tenancy_id, expected_next_due_date, updates)

    monkeypatch.setattr(TenancyRepository, "save_if_unchanged", flaky_save)

    payments = await record_payment(async_session, tenancy_id, 2000, clock=FixedClock(date(2024, 1, 5)))

    assert len(calls) == 2
    assert len(payments) == 1
    state = await TenancyRepository(async_session).load(tenancy_id)
    assert state.next_due_date == date(2024, 2, 5)


@pytest.mark.asyncio
async def test_stale_save_gives_up_after_retry(async_session, monkeypatch):
    tenancy_id = await _tenancy(async_session)
    calls = []

    async def always_stale(self, tenancy_id, expected_next_due_date, updates):
        calls.append(expected_next_due_date)
        raise StaleTenancyStateError(tenancy_id, expected_next_due_date)

    monkeypatch.setattr(TenancyRepository, "save_if_unchanged", always_stale)

    with pytest.raises(StaleTenancyStateError):
        await record_payment(async_session, tenancy_id, 2000)

    assert len(calls) == 2
    assert await get_payment_history(async_session, tenancy_id) == []


def interleave_write(monkeypatch, session_factory, next_due_date):
    """
    Make another session move the stored due date right before the first save,
    as a second worker settling the same period would.
    """
    original = TenancyRepository.save_if_unchanged
    calls = []

    async def save_after_other_writer(self, tenancy_id, expected_next_due_date, updates):
        calls.append(expected_next_due_date)
        if len(calls) == 1:
            async with session_factory() as other:
                await other.execute(
                    update(Tenancy)
                    .where(Tenancy.id == tenancy_id)
                    .values(next_due_date=next_due_date)
                )
                await other.commit()
        return await original(self, tenancy_id, expected_next_due_date, updates)

    monkeypatch.setattr(TenancyRepository, "save_if_unchanged", save_after_other_writer)
    return calls


@pytest.mark.asyncio
async def test_concurrent_write_recomputes_periods(file_session_factory, monkeypatch):
    async with file_session_factory() as session:
        tenancy_id = await _tenancy(session)
        calls = interleave_write(monkeypatch, file_session_factory, date(2024, 2, 5))

        payments = await record_payment(session, tenancy_id, 2000, clock=FixedClock(date(2024, 1, 10)))

        # January was settled elsewhere, so this payment covers February
        assert calls == [date(2024, 1, 5), date(2024, 2, 5)]
        assert [p.notes for p in payments] == ["Rent payment for February 2024"]
        assert payments[0].period_label == "February 2024"

        state = await TenancyRepository(session).load(tenancy_id)
        assert state.next_due_date == date(2024, 3, 5)


@pytest.mark.asyncio
async def test_concurrent_write_refuses_selected_periods(file_session_factory, monkeypatch):
    async with file_session_factory() as session:
        tenancy_id = await _tenancy(session)
        calls = interleave_write(monkeypatch, file_session_factory, date(2024, 2, 5))

        with pytest.raises(StaleTenancyStateError):
            await record_payment(
                session, tenancy_id, 2000,
                period_labels=["January 2024"],
                clock=FixedClock(date(2024, 1, 10))
            )

        # Only the first attempt reached the save
        assert calls == [date(2024, 1, 5)]

        state = await TenancyRepository(session).load(tenancy_id)
        assert state.next_due_date == date(2024, 2, 5)
        assert await get_payment_history(session, tenancy_id) == []


@pytest.mark.asyncio
async def test_selected_periods_must_be_next_unpaid(async_session):
    tenancy_id = await _tenancy(async_session)

    with pytest.raises(StaleTenancyStateError):
        await record_payment(async_session, tenancy_id, 2000, period_labels=["February 2024"])

    payments = await record_payment(
        async_session, tenancy_id, 4000,
        period_labels=["January 2024", "February 2024"],
        clock=FixedClock(date(2024, 2, 10))
    )
    assert [p.period_label for p in payments] == ["January 2024", "February 2024"]
