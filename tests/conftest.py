import os

# Settings are read at import time
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["ENV"] = "test"
os.environ["TZ"] = "Asia/Singapore"
os.environ["WEEK_START_WEEKDAY"] = "6"
os.environ["LOW_AVAILABILITY_THRESHOLD"] = "2"

from datetime import date, time
from decimal import Decimal

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from pickleplus.core.database import build_engine, build_session_factory, get_db, init_db
from pickleplus.main import app
from pickleplus.models import ClassOffering, ClassStatus, Facility
from pickleplus.services.schedule_cache import schedule_cache

# Wednesday; its Sunday-based week starts 2025-03-09
WEDNESDAY = date(2025, 3, 12)


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'booking.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture(autouse=True)
def _clear_schedule_cache():
    schedule_cache.clear()
    yield
    schedule_cache.clear()


@pytest_asyncio.fixture
async def client(session_factory):
    async def _get_test_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = _get_test_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def facility(db):
    facility = Facility(
        name="Pickle+ Kallang",
        address="1 Stadium Place, Singapore",
        city="Singapore",
        access_code="TC001-SG",
    )
    db.add(facility)
    await db.commit()
    await db.refresh(facility)
    return facility


@pytest.fixture
def make_class(db, facility):
    default_facility_id = facility.id

    async def _make_class(
        class_date: date = WEDNESDAY,
        start_time: time = time(18, 0),
        min_participants: int = 4,
        max_participants: int = 6,
        current_enrollment: int = 0,
        status: ClassStatus = ClassStatus.SCHEDULED,
        facility_id=None,
        **extra,
    ) -> ClassOffering:
        offering = ClassOffering(
            facility_id=facility_id or default_facility_id,
            name=extra.pop("name", "Beginner Fundamentals"),
            class_date=class_date,
            start_time=start_time,
            end_time=extra.pop("end_time", None) or time(start_time.hour + 1, start_time.minute),
            skill_level=extra.pop("skill_level", "beginner"),
            min_participants=min_participants,
            max_participants=max_participants,
            current_enrollment=current_enrollment,
            price=extra.pop("price", Decimal("25.00")),
            status=status,
            **extra,
        )
        db.add(offering)
        await db.commit()
        await db.refresh(offering)
        return offering

    return _make_class
