from decimal import Decimal

import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession

from rentcycle.database.core import init_db
from rentcycle.database.models import (
    ParentProperty, Property, PropertyStatus, RentFrequency
)


@pytest_asyncio.fixture
async def session_factory():
    # Use in-memory SQLite for tests
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    await init_db(engine)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture
async def async_session(session_factory):
    async with session_factory() as session:
        yield session


async def make_unit(session, owner_id=1, rent_amount=3000, due_day=5,
                    rent_frequency=RentFrequency.monthly, unit_name="Flat 1"):
    """Building + one vacant unit, flushed so ids are set"""
    building = ParentProperty(owner_id=owner_id, name="Green Court", address="12 Park Road")
    session.add(building)
    await session.flush()

    unit = Property(
        parent_property_id=building.id,
        owner_id=owner_id,
        unit_name=unit_name,
        rent_amount=Decimal(str(rent_amount)),
        rent_frequency=rent_frequency.value,
        due_day=due_day,
        security_deposit=Decimal("0"),
        status=PropertyStatus.vacant.value
    )
    session.add(unit)
    await session.flush()
    return unit


@pytest_asyncio.fixture
async def file_session_factory(tmp_path):
    # On-disk database: every session gets its own connection, like separate workers
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'rentcycle.db'}")
    await init_db(engine)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()
