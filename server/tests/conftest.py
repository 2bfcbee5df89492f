"""Test configuration and fixtures."""

import os

# The application engine is built at import time; point it at SQLite first
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("BEARER_TOKEN_SECRET", "test-secret")

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import AsyncGenerator, Optional

import jwt
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from tour_crm.core.config import settings
from tour_crm.core.database import Base
from tour_crm.core.dependencies import ServiceContext, get_db
from tour_crm.models import (
    AvailabilityWindow,
    Booking,
    BookingSource,
    BookingStatus,
    Customer,
    DepartureTime,
    Organization,
    PaymentStatus,
    Schedule,
    Tour,
    TourStatus,
)
from tour_crm.services.guide_requirement_service import guide_task_dispatcher

# A Monday, far enough out that real-clock API calls never treat it as past
FIXED_NOW = datetime(2030, 1, 7, 8, 0, tzinfo=timezone.utc)
MONDAY = FIXED_NOW.date()
WEEKDAYS = [1, 2, 3, 4, 5]


def next_weekday(weekday: int, weeks_ahead: int = 1) -> date:
    """Date of the given Python weekday (0 = Monday) at least ``weeks_ahead`` weeks from today."""
    start = date.today() + timedelta(weeks=weeks_ahead)
    return start + timedelta(days=(weekday - start.weekday()) % 7)


def make_token(organization_id, user_id: str = "user-1") -> str:
    return jwt.encode(
        {"sub": user_id, "org_id": str(organization_id)},
        settings.bearer_token_secret,
        algorithm="HS256",
    )


@pytest.fixture
def clock():
    """Frozen clock for services."""
    return lambda: FIXED_NOW


@pytest_asyncio.fixture
async def test_engine(tmp_path):
    """File-backed SQLite engine; every connection sees the same data."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'tour_crm.db'}",
        poolclass=NullPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    # Guide recalculations started by API calls must land before the file goes
    await guide_task_dispatcher.drain()
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def test_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def organization(test_session) -> Organization:
    org = Organization(name="Harbour Walks", slug="harbour-walks")
    test_session.add(org)
    await test_session.commit()
    return org


@pytest_asyncio.fixture
async def other_organization(test_session) -> Organization:
    org = Organization(name="Rival Tours", slug="rival-tours")
    test_session.add(org)
    await test_session.commit()
    return org


@pytest.fixture
def ctx(organization) -> ServiceContext:
    return ServiceContext(organization_id=organization.id, user_id="user-1")


@pytest_asyncio.fixture
async def customer(test_session, organization) -> Customer:
    customer = Customer(
        organization_id=organization.id,
        first_name="Ada",
        last_name="Lovelace",
        email="ada@example.com",
    )
    test_session.add(customer)
    await test_session.commit()
    return customer


@pytest_asyncio.fixture
async def tour(test_session, organization) -> Tour:
    tour = Tour(
        organization_id=organization.id,
        name="Old Town Walk",
        slug="old-town-walk",
        duration_minutes=120,
        max_participants=10,
        guests_per_guide=4,
        base_price=Decimal("50.00"),
        currency="USD",
        status=TourStatus.ACTIVE.value,
    )
    test_session.add(tour)
    await test_session.commit()
    return tour


@pytest_asyncio.fixture
async def weekday_window(test_session, organization, tour) -> AvailabilityWindow:
    """Open-ended Monday to Friday window."""
    window = AvailabilityWindow(
        organization_id=organization.id,
        tour_id=tour.id,
        name="Weekdays",
        start_date=date(2020, 1, 1),
        days_of_week=list(WEEKDAYS),
    )
    test_session.add(window)
    await test_session.commit()
    return window


@pytest_asyncio.fixture
async def departure(test_session, organization, tour) -> DepartureTime:
    departure = DepartureTime(
        organization_id=organization.id,
        tour_id=tour.id,
        time="09:00",
        label="Morning",
    )
    test_session.add(departure)
    await test_session.commit()
    return departure


@pytest_asyncio.fixture
async def operating_tour(tour, weekday_window, departure) -> Tour:
    """Tour that runs at 09:00 on weekdays."""
    return tour


async def _add_schedule(
    session: AsyncSession,
    tour: Tour,
    starts_at: datetime,
    max_participants: int = 10,
    booked_count: int = 0,
    price=None,
) -> Schedule:
    schedule = Schedule(
        organization_id=tour.organization_id,
        tour_id=tour.id,
        starts_at=starts_at,
        ends_at=starts_at + timedelta(minutes=tour.duration_minutes),
        max_participants=max_participants,
        booked_count=booked_count,
        price=price,
        currency=tour.currency,
    )
    session.add(schedule)
    await session.commit()
    return schedule


@pytest_asyncio.fixture
async def schedule(test_session, tour) -> Schedule:
    """Materialized run two days after the frozen clock."""
    return await _add_schedule(test_session, tour, FIXED_NOW + timedelta(days=2, hours=2))


@pytest_asyncio.fixture
async def second_schedule(test_session, tour) -> Schedule:
    return await _add_schedule(test_session, tour, FIXED_NOW + timedelta(days=3, hours=2), max_participants=5)


@pytest.fixture
def fixed_now() -> datetime:
    return FIXED_NOW


@pytest.fixture
def make_schedule(test_session, tour):
    """Factory for extra schedules of the default tour."""

    async def make(starts_at: datetime, **kwargs) -> Schedule:
        return await _add_schedule(test_session, tour, starts_at, **kwargs)

    return make


@pytest.fixture
def make_booking(test_session, organization, customer, tour):
    """
    Factory inserting booking rows directly, bypassing the capacity checks.

    Useful to set up a slot's booked count or a dashboard scenario.
    """
    counter = {"n": 0}

    async def make(
        booking_date: Optional[date] = None,
        booking_time: Optional[str] = "09:00",
        guests: int = 1,
        status: str = BookingStatus.PENDING.value,
        payment_status: str = PaymentStatus.PENDING.value,
        schedule: Optional[Schedule] = None,
        tour_id=None,
        total: Decimal = Decimal("50.00"),
    ) -> Booking:
        counter["n"] += 1
        if schedule is not None:
            starts_at = schedule.starts_at
            booking_date = starts_at.date()
            booking_time = starts_at.strftime("%H:%M")
        booking = Booking(
            organization_id=organization.id,
            reference_number=f"BK-TEST{counter['n']:04d}",
            customer_id=customer.id,
            tour_id=tour_id or tour.id,
            schedule_id=schedule.id if schedule is not None else None,
            booking_date=booking_date,
            booking_time=booking_time,
            adult_count=guests,
            guest_adults=guests,
            total_participants=guests,
            subtotal=total,
            total=total,
            status=status,
            payment_status=payment_status,
            source=BookingSource.MANUAL.value,
        )
        test_session.add(booking)
        await test_session.commit()
        return booking

    return make


@pytest.fixture
def api_tuesday() -> date:
    """A Tuesday comfortably in the future of the real clock, for API calls."""
    return next_weekday(1)


@pytest_asyncio.fixture
async def test_app(session_factory):
    """Application wired to the test database."""
    from tour_crm.main import create_app

    app = create_app()

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    yield app
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def test_client(test_app) -> AsyncGenerator[AsyncClient, None]:
    """Create a test HTTP client."""
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def auth_headers(organization) -> dict:
    return {"Authorization": f"Bearer {make_token(organization.id)}"}


@pytest.fixture
def other_auth_headers(other_organization) -> dict:
    return {"Authorization": f"Bearer {make_token(other_organization.id, user_id='user-2')}"}
