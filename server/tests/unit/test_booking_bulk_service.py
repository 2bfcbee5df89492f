"""Unit tests for bulk booking operations."""

from uuid import uuid4

import pytest
from sqlalchemy import select

from tour_crm.models import Booking, BookingStatus, PaymentStatus, Schedule
from tour_crm.schemas.booking import CreateBookingRequest, RescheduleTarget
from tour_crm.services.booking_bulk_service import BOOKING_NOT_FOUND, BookingBulkService
from tour_crm.services.booking_command_service import BookingCommandService


class RecordingRecalculator:
    def __init__(self):
        self.schedule_ids = []

    def request_recalculation(self, schedule_id):
        self.schedule_ids.append(schedule_id)


@pytest.fixture
def recalculator():
    return RecordingRecalculator()


@pytest.fixture
def commands(test_session, ctx, clock):
    return BookingCommandService(test_session, ctx, clock=clock)


@pytest.fixture
def bulk(test_session, ctx, clock, session_factory, recalculator):
    return BookingBulkService(
        test_session,
        ctx,
        session_factory=session_factory,
        guide_recalculator=recalculator,
        clock=clock,
    )


async def _status(session, booking_id):
    result = await session.execute(select(Booking.status, Booking.payment_status).where(Booking.id == booking_id))
    return result.one()


async def _booked(session, schedule_id) -> int:
    result = await session.execute(select(Schedule.booked_count).where(Schedule.id == schedule_id))
    return result.scalar_one()


async def _book(commands, customer, schedule, guests=1):
    return await commands.create_booking(
        CreateBookingRequest(customer_id=customer.id, schedule_id=schedule.id, adult_count=guests)
    )


@pytest.mark.asyncio
async def test_bulk_confirm_reports_each_failure(bulk, commands, test_session, customer, schedule):
    pending = await _book(commands, customer, schedule)
    already = await _book(commands, customer, schedule)
    await commands.confirm_booking(already.id)
    missing = uuid4()

    result = await bulk.bulk_confirm([pending.id, already.id, missing, pending.id])

    assert result.succeeded_ids == [pending.id]
    assert [(e.id, e.error) for e in result.errors] == [
        (already.id, 'Cannot confirm booking with status "confirmed"'),
        (missing, BOOKING_NOT_FOUND),
    ]
    assert (await _status(test_session, pending.id)).status == BookingStatus.CONFIRMED.value


@pytest.mark.asyncio
async def test_bulk_confirm_with_no_ids(bulk):
    result = await bulk.bulk_confirm([])
    assert result.succeeded_ids == []
    assert result.errors == []


@pytest.mark.asyncio
async def test_bulk_cancel_releases_capacity_per_schedule(
    bulk, commands, test_session, customer, schedule, second_schedule, recalculator
):
    first = await _book(commands, customer, schedule, guests=2)
    second = await _book(commands, customer, schedule, guests=3)
    third = await _book(commands, customer, second_schedule, guests=1)
    done = await _book(commands, customer, second_schedule, guests=1)
    await commands.confirm_booking(done.id)
    await commands.complete_booking(done.id)

    result = await bulk.bulk_cancel([first.id, second.id, third.id, done.id], reason="Storm warning")

    assert result.succeeded_ids == [first.id, second.id, third.id]
    assert [(e.id, e.error) for e in result.errors] == [(done.id, "Cannot cancel a completed booking")]
    assert await _booked(test_session, schedule.id) == 0
    assert await _booked(test_session, second_schedule.id) == 1
    assert sorted(recalculator.schedule_ids, key=str) == sorted([schedule.id, second_schedule.id], key=str)

    test_session.expire_all()
    cancelled = await test_session.get(Booking, first.id)
    assert cancelled.status == BookingStatus.CANCELLED.value
    assert cancelled.cancellation_reason == "Storm warning"


@pytest.mark.asyncio
async def test_bulk_payment_status(bulk, commands, test_session, customer, schedule):
    booking = await _book(commands, customer, schedule)
    missing = uuid4()

    result = await bulk.bulk_update_payment_status([booking.id, missing], PaymentStatus.PAID)

    assert result.succeeded_ids == [booking.id]
    assert [(e.id, e.error) for e in result.errors] == [(missing, BOOKING_NOT_FOUND)]
    assert (await _status(test_session, booking.id)).payment_status == PaymentStatus.PAID.value


@pytest.mark.asyncio
async def test_bulk_reschedule_isolates_failures(
    bulk, commands, test_session, customer, schedule, second_schedule, recalculator
):
    movers = [await _book(commands, customer, schedule, guests=2) for _ in range(3)]
    cancelled = await _book(commands, customer, schedule, guests=1)
    await commands.cancel_booking(cancelled.id)
    missing = uuid4()

    # The destination fits two of the three parties
    result = await bulk.bulk_reschedule(
        [m.id for m in movers] + [cancelled.id, missing],
        RescheduleTarget(schedule_id=second_schedule.id),
    )

    assert len(result.succeeded_ids) == 2
    assert set(result.succeeded_ids) <= {m.id for m in movers}
    errors = {e.id: e.error for e in result.errors}
    assert errors[cancelled.id] == "Cannot reschedule a cancelled booking"
    assert errors[missing] == BOOKING_NOT_FOUND
    assert "Capacity exceeded for this schedule" in errors.values()

    test_session.expire_all()
    assert await _booked(test_session, second_schedule.id) == 4
    assert await _booked(test_session, schedule.id) == 2
    assert second_schedule.id in recalculator.schedule_ids


def _cancel_after_fetch(bulk, monkeypatch, booking_id, session_factory, ctx, clock):
    """Another request cancels ``booking_id`` between the bulk read and its writes."""
    fetch = bulk._fetch

    async def fetch_then_cancel(booking_ids):
        rows = await fetch(booking_ids)
        async with session_factory() as session:
            await BookingCommandService(session, ctx, clock=clock).cancel_booking(booking_id)
        return rows

    monkeypatch.setattr(bulk, "_fetch", fetch_then_cancel)


@pytest.mark.asyncio
async def test_bulk_cancel_skips_bookings_cancelled_after_the_read(
    bulk, commands, test_session, session_factory, ctx, clock, customer, schedule, monkeypatch
):
    racing = await _book(commands, customer, schedule, guests=3)
    other = await _book(commands, customer, schedule, guests=2)
    _cancel_after_fetch(bulk, monkeypatch, racing.id, session_factory, ctx, clock)

    result = await bulk.bulk_cancel([racing.id, other.id])

    assert result.succeeded_ids == [other.id]
    assert [(e.id, e.error) for e in result.errors] == [(racing.id, "Booking is already cancelled")]
    assert await _booked(test_session, schedule.id) == 0


@pytest.mark.asyncio
async def test_bulk_confirm_skips_bookings_cancelled_after_the_read(
    bulk, commands, test_session, session_factory, ctx, clock, customer, schedule, monkeypatch
):
    racing = await _book(commands, customer, schedule, guests=3)
    other = await _book(commands, customer, schedule, guests=2)
    _cancel_after_fetch(bulk, monkeypatch, racing.id, session_factory, ctx, clock)

    result = await bulk.bulk_confirm([racing.id, other.id])

    assert result.succeeded_ids == [other.id]
    assert [(e.id, e.error) for e in result.errors] == [
        (racing.id, 'Cannot confirm booking with status "cancelled"')
    ]
    assert (await _status(test_session, racing.id)).status == BookingStatus.CANCELLED.value
    assert (await _status(test_session, other.id)).status == BookingStatus.CONFIRMED.value
    assert await _booked(test_session, schedule.id) == 2
