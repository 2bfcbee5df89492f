"""Concurrency tests for booking operations."""

import asyncio

import pytest
from sqlalchemy import func, select

from tour_crm.core.exceptions import CapacityExceededError, ValidationError
from tour_crm.models import Booking, BookingStatus, Schedule
from tour_crm.schemas.booking import CreateBookingRequest
from tour_crm.services.booking_command_service import BookingCommandService
from tour_crm.services.capacity_ledger import CapacityLedger


async def _booked(session, schedule_id) -> int:
    result = await session.execute(select(Schedule.booked_count).where(Schedule.id == schedule_id))
    return result.scalar_one()


async def _live_bookings(session, schedule_id) -> int:
    result = await session.execute(
        select(func.count()).select_from(Booking).where(
            Booking.schedule_id == schedule_id,
            Booking.status != BookingStatus.CANCELLED.value,
        )
    )
    return result.scalar_one()


@pytest.mark.asyncio
async def test_concurrent_bookings_never_overbook(session_factory, test_session, ctx, clock, customer, schedule):
    """Test that concurrent booking requests don't cause overbooking."""
    num_concurrent_requests = 20

    async def book():
        # Each request gets its own session, as it would behind the API
        async with session_factory() as session:
            service = BookingCommandService(session, ctx, clock=clock)
            return await service.create_booking(
                CreateBookingRequest(customer_id=customer.id, schedule_id=schedule.id, adult_count=1)
            )

    results = await asyncio.gather(*(book() for _ in range(num_concurrent_requests)), return_exceptions=True)

    successes = [r for r in results if not isinstance(r, BaseException)]
    failures = [r for r in results if isinstance(r, BaseException)]
    assert all(isinstance(f, CapacityExceededError) for f in failures), failures

    # Exactly the capacity gets in, one guest per request
    assert len(successes) == schedule.max_participants
    assert len(failures) == num_concurrent_requests - schedule.max_participants
    assert await _booked(test_session, schedule.id) == schedule.max_participants
    assert await _live_bookings(test_session, schedule.id) == len(successes)


@pytest.mark.asyncio
async def test_concurrent_parties_fill_what_fits(session_factory, test_session, ctx, clock, customer, schedule):
    """Four parties of three race for ten spots: three get in, the last is turned away."""
    party = schedule.max_participants // 4 + 1

    async def book():
        async with session_factory() as session:
            return await BookingCommandService(session, ctx, clock=clock).create_booking(
                CreateBookingRequest(customer_id=customer.id, schedule_id=schedule.id, adult_count=party)
            )

    results = await asyncio.gather(*(book() for _ in range(4)), return_exceptions=True)

    successes = [r for r in results if not isinstance(r, BaseException)]
    failures = [r for r in results if isinstance(r, BaseException)]
    assert len(successes) == schedule.max_participants // party
    assert len(failures) == 4 - len(successes)
    assert all(isinstance(f, CapacityExceededError) for f in failures), failures
    assert await _booked(test_session, schedule.id) == party * len(successes)


@pytest.mark.asyncio
async def test_concurrent_reservations_respect_the_guard(session_factory, test_session, ctx, make_schedule, fixed_now):
    """Parties of three racing for seven spots: at most two get in."""
    schedule = await make_schedule(fixed_now.replace(day=11, hour=10), max_participants=7)

    async def reserve():
        async with session_factory() as session:
            try:
                await CapacityLedger(session, ctx).reserve(schedule.id, 3)
                await session.commit()
                return True
            except CapacityExceededError:
                await session.rollback()
                return False

    results = await asyncio.gather(*(reserve() for _ in range(6)))

    assert sum(results) <= 2
    assert await _booked(test_session, schedule.id) == 3 * sum(results)


@pytest.mark.asyncio
async def test_concurrent_cancellations_release_everything(
    session_factory, test_session, ctx, clock, customer, schedule
):
    """Cancelling distinct bookings at once returns every spot."""
    service = BookingCommandService(test_session, ctx, clock=clock)
    bookings = [
        await service.create_booking(
            CreateBookingRequest(customer_id=customer.id, schedule_id=schedule.id, adult_count=2)
        )
        for _ in range(5)
    ]
    assert await _booked(test_session, schedule.id) == 10

    async def cancel(booking_id):
        async with session_factory() as session:
            return await BookingCommandService(session, ctx, clock=clock).cancel_booking(booking_id)

    cancelled = await asyncio.gather(*(cancel(b.id) for b in bookings))

    assert all(b.status == BookingStatus.CANCELLED.value for b in cancelled)
    assert await _booked(test_session, schedule.id) == 0
    assert await _live_bookings(test_session, schedule.id) == 0


@pytest.mark.asyncio
async def test_freed_spots_can_be_rebooked_concurrently(
    session_factory, test_session, ctx, clock, customer, second_schedule
):
    """Cancellations and new bookings racing on a full schedule keep the count exact."""
    service = BookingCommandService(test_session, ctx, clock=clock)
    existing = [
        await service.create_booking(
            CreateBookingRequest(customer_id=customer.id, schedule_id=second_schedule.id, adult_count=1)
        )
        for _ in range(second_schedule.max_participants)
    ]

    async def cancel(booking_id):
        async with session_factory() as session:
            await BookingCommandService(session, ctx, clock=clock).cancel_booking(booking_id)
            return None

    async def book():
        async with session_factory() as session:
            return await BookingCommandService(session, ctx, clock=clock).create_booking(
                CreateBookingRequest(customer_id=customer.id, schedule_id=second_schedule.id, adult_count=1)
            )

    tasks = [cancel(b.id) for b in existing[:3]] + [book() for _ in range(6)]
    results = await asyncio.gather(*tasks, return_exceptions=True)

    failures = [r for r in results if isinstance(r, BaseException)]
    assert all(isinstance(f, ValidationError) for f in failures), failures

    booked = await _booked(test_session, second_schedule.id)
    assert booked <= second_schedule.max_participants
    assert booked == await _live_bookings(test_session, second_schedule.id)


@pytest.mark.asyncio
async def test_racing_cancels_of_one_booking_release_once(
    session_factory, test_session, ctx, clock, customer, schedule
):
    """Two cancels of the same booking: one wins, the spots come back once."""
    service = BookingCommandService(test_session, ctx, clock=clock)
    kept = await service.create_booking(
        CreateBookingRequest(customer_id=customer.id, schedule_id=schedule.id, adult_count=3)
    )
    target = await service.create_booking(
        CreateBookingRequest(customer_id=customer.id, schedule_id=schedule.id, adult_count=3)
    )
    assert await _booked(test_session, schedule.id) == 6

    async def cancel():
        async with session_factory() as session:
            return await BookingCommandService(session, ctx, clock=clock).cancel_booking(target.id)

    results = await asyncio.gather(cancel(), cancel(), return_exceptions=True)

    cancelled = [r for r in results if not isinstance(r, BaseException)]
    failures = [r for r in results if isinstance(r, BaseException)]
    assert len(cancelled) == 1
    assert len(failures) == 1
    assert isinstance(failures[0], ValidationError)
    assert failures[0].message == "Booking is already cancelled"

    assert await _booked(test_session, schedule.id) == kept.total_participants
    assert await _live_bookings(test_session, schedule.id) == 1


@pytest.mark.asyncio
async def test_confirm_racing_cancel_never_confirms_a_released_booking(
    session_factory, test_session, ctx, clock, customer, schedule
):
    booking = await BookingCommandService(test_session, ctx, clock=clock).create_booking(
        CreateBookingRequest(customer_id=customer.id, schedule_id=schedule.id, adult_count=2)
    )

    async def run(command):
        async with session_factory() as session:
            service = BookingCommandService(session, ctx, clock=clock)
            return await getattr(service, command)(booking.id)

    results = await asyncio.gather(run("confirm_booking"), run("cancel_booking"), return_exceptions=True)
    assert all(isinstance(r, (Booking, ValidationError)) for r in results), results

    status = (
        await test_session.execute(select(Booking.status).where(Booking.id == booking.id))
    ).scalar_one()
    booked = await _booked(test_session, schedule.id)
    if status == BookingStatus.CANCELLED.value:
        assert booked == 0
    else:
        assert status == BookingStatus.CONFIRMED.value
        assert booked == 2
