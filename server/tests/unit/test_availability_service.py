"""Unit tests for the tour availability engine."""

from datetime import date, datetime, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from tour_crm.core.dependencies import ServiceContext
from tour_crm.core.exceptions import NotFoundError, ValidationError
from tour_crm.models import AvailabilityWindow, BlackoutDate, BookingStatus, TourStatus
from tour_crm.schemas.availability import (
    CreateAvailabilityWindowRequest,
    CreateBlackoutDateRequest,
    CreateDepartureTimeRequest,
    UpdateAvailabilityWindowRequest,
    UpdateDepartureTimeRequest,
)
from tour_crm.schemas.booking import CreateBookingRequest
from tour_crm.services.availability_service import (
    SlotAvailability,
    TourAvailabilityService,
    select_window,
    unavailable_message,
    utilization_status,
    weekday_index,
)
from tour_crm.services.booking_command_service import BookingCommandService

TUESDAY = date(2030, 1, 8)
SATURDAY = date(2030, 1, 12)
NEXT_MONDAY = date(2030, 1, 14)


def _window(start, end=None, days=(0, 1, 2, 3, 4, 5, 6), created_at=None, name=None, is_active=True):
    return AvailabilityWindow(
        name=name,
        start_date=start,
        end_date=end,
        days_of_week=list(days),
        is_active=is_active,
        created_at=created_at or datetime(2029, 1, 1),
    )


@pytest.fixture
def service(test_session, ctx, clock):
    return TourAvailabilityService(test_session, ctx, clock=clock)


# ----------------------------------------------------------------------
# Pure helpers
# ----------------------------------------------------------------------


def test_weekday_index_starts_on_sunday():
    assert weekday_index(date(2030, 1, 6)) == 0  # Sunday
    assert weekday_index(date(2030, 1, 7)) == 1  # Monday
    assert weekday_index(SATURDAY) == 6


def test_select_window_prefers_narrowest_range():
    season = _window(date(2030, 1, 1), date(2030, 3, 31), name="season")
    special = _window(date(2030, 1, 5), date(2030, 1, 10), name="special")
    forever = _window(date(2020, 1, 1), name="forever")

    assert select_window([forever, season, special], TUESDAY).name == "special"
    assert select_window([forever, season], TUESDAY).name == "season"


def test_select_window_ties_go_to_latest_start_then_newest():
    early = _window(date(2030, 1, 1), date(2030, 1, 10), name="early")
    late = _window(date(2030, 1, 2), date(2030, 1, 11), name="late")
    assert select_window([early, late], TUESDAY).name == "late"

    older = _window(date(2030, 1, 1), date(2030, 1, 10), name="older", created_at=datetime(2029, 1, 1))
    newer = _window(date(2030, 1, 1), date(2030, 1, 10), name="newer", created_at=datetime(2029, 6, 1))
    assert select_window([older, newer], TUESDAY).name == "newer"


def test_select_window_ignores_inactive_and_non_operating_days():
    inactive = _window(date(2030, 1, 1), date(2030, 1, 31), is_active=False)
    weekdays = _window(date(2030, 1, 1), date(2030, 1, 31), days=(1, 2, 3, 4, 5))

    assert select_window([inactive], TUESDAY) is None
    assert select_window([weekdays], SATURDAY) is None
    assert select_window([], TUESDAY) is None


@pytest.mark.parametrize(
    "percent,expected",
    [(0, "empty"), (1, "low"), (39.9, "low"), (40, "moderate"), (74, "moderate"),
     (75, "high"), (99, "high"), (100, "full"), (120, "full")],
)
def test_utilization_status(percent, expected):
    assert utilization_status(percent) == expected


def test_unavailable_message_per_action():
    short = SlotAvailability(False, 2, 10, 8, "insufficient_capacity")
    assert unavailable_message(short) == "Not enough spots. Only 2 spots remaining."
    assert unavailable_message(short, action="update") == "Not enough spots. Only 2 additional spots remaining."

    past = SlotAvailability(False, 0, 10, 0, "past_date")
    assert unavailable_message(past) == "Cannot book a date in the past"
    assert unavailable_message(past, action="reschedule") == "Cannot reschedule to a date in the past"

    assert unavailable_message(SlotAvailability(False, 0, 10, 0, "mystery")) == "Slot is not available"


# ----------------------------------------------------------------------
# Slot checks
# ----------------------------------------------------------------------


@pytest.mark.asyncio
async def test_open_slot_is_available(service, operating_tour):
    result = await service.check_slot_availability(operating_tour.id, TUESDAY, "09:00", 2)

    assert result.available is True
    assert result.spots_remaining == 10
    assert result.max_capacity == 10
    assert result.booked_count == 0
    assert result.reason is None


@pytest.mark.asyncio
async def test_slot_closed_on_non_operating_day_and_unknown_time(service, operating_tour):
    weekend = await service.check_slot_availability(operating_tour.id, SATURDAY, "09:00", 1)
    assert weekend.available is False
    assert weekend.reason == "not_operating"

    unknown_time = await service.check_slot_availability(operating_tour.id, TUESDAY, "10:30", 1)
    assert unknown_time.reason == "not_operating"


@pytest.mark.asyncio
async def test_past_date_is_rejected(service, operating_tour):
    result = await service.check_slot_availability(operating_tour.id, date(2030, 1, 4), "09:00", 1)
    assert result.available is False
    assert result.reason == "past_date"


@pytest.mark.asyncio
async def test_blackout_overrides_an_operating_window(service, test_session, operating_tour):
    test_session.add(BlackoutDate(
        organization_id=operating_tour.organization_id,
        tour_id=operating_tour.id,
        date=TUESDAY,
        reason="City marathon",
    ))
    await test_session.commit()

    result = await service.check_slot_availability(operating_tour.id, TUESDAY, "09:00", 1)
    assert result.available is False
    assert result.reason == "blackout"


@pytest.mark.asyncio
async def test_sold_out_and_insufficient_capacity(service, operating_tour, make_booking):
    await make_booking(TUESDAY, guests=6)
    await make_booking(TUESDAY, guests=2, status=BookingStatus.CONFIRMED.value)

    short = await service.check_slot_availability(operating_tour.id, TUESDAY, "09:00", 3)
    assert short.available is False
    assert short.reason == "insufficient_capacity"
    assert short.spots_remaining == 2
    assert short.booked_count == 8

    await make_booking(TUESDAY, guests=2)
    full = await service.check_slot_availability(operating_tour.id, TUESDAY, "09:00", 1)
    assert full.reason == "sold_out"
    assert full.spots_remaining == 0


@pytest.mark.asyncio
async def test_booking_every_remaining_spot_sells_the_slot_out(
    service, test_session, ctx, clock, operating_tour, customer
):
    before = await service.check_slot_availability(operating_tour.id, NEXT_MONDAY, "09:00", 1)
    assert before.available is True
    assert before.spots_remaining == before.max_capacity == 10

    commands = BookingCommandService(test_session, ctx, clock=clock)
    booking = await commands.create_booking(
        CreateBookingRequest(
            customer_id=customer.id,
            tour_id=operating_tour.id,
            booking_date=NEXT_MONDAY,
            booking_time="09:00",
            adult_count=before.spots_remaining,
        )
    )
    assert booking.total_participants == 10

    after = await service.check_slot_availability(operating_tour.id, NEXT_MONDAY, "09:00", 1)
    assert after.available is False
    assert after.reason == "sold_out"
    assert after.spots_remaining == 0
    assert after.booked_count == 10


@pytest.mark.asyncio
async def test_only_pending_and_confirmed_bookings_hold_capacity(service, operating_tour, make_booking):
    await make_booking(TUESDAY, guests=4, status=BookingStatus.CANCELLED.value)
    await make_booking(TUESDAY, guests=3, status=BookingStatus.NO_SHOW.value)
    await make_booking(TUESDAY, guests=2, status=BookingStatus.COMPLETED.value)
    await make_booking(TUESDAY, guests=1)

    result = await service.check_slot_availability(operating_tour.id, TUESDAY, "09:00", 1)
    assert result.booked_count == 1
    assert result.spots_remaining == 9


@pytest.mark.asyncio
async def test_excluded_booking_is_not_counted(service, operating_tour, make_booking):
    mine = await make_booking(TUESDAY, guests=7)
    await make_booking(TUESDAY, guests=3)

    with_self = await service.check_slot_availability(operating_tour.id, TUESDAY, "09:00", 7)
    assert with_self.available is False

    without_self = await service.check_slot_availability(
        operating_tour.id, TUESDAY, "09:00", 7, exclude_booking_id=mine.id
    )
    assert without_self.available is True
    assert without_self.booked_count == 3


@pytest.mark.asyncio
async def test_window_capacity_override(service, test_session, operating_tour):
    test_session.add(AvailabilityWindow(
        organization_id=operating_tour.organization_id,
        tour_id=operating_tour.id,
        name="Small group week",
        start_date=date(2030, 1, 7),
        end_date=date(2030, 1, 11),
        days_of_week=[1, 2, 3, 4, 5],
        max_participants_override=4,
        price_override=Decimal("80.00"),
    ))
    await test_session.commit()

    result = await service.check_slot_availability(operating_tour.id, TUESDAY, "09:00", 5)
    assert result.available is False
    assert result.max_capacity == 4

    assert await service.get_slot_unit_price(operating_tour, TUESDAY) == Decimal("80.00")
    assert await service.get_slot_unit_price(operating_tour, date(2030, 1, 15)) == Decimal("50.00")


@pytest.mark.asyncio
async def test_inactive_tour_is_not_bookable(service, test_session, operating_tour):
    operating_tour.status = TourStatus.INACTIVE.value
    await test_session.commit()

    result = await service.check_slot_availability(operating_tour.id, TUESDAY, "09:00", 1)
    assert result.reason == "tour_inactive"


@pytest.mark.asyncio
async def test_same_day_rules(service, test_session, operating_tour, fixed_now):
    today = fixed_now.date()

    operating_tour.allow_same_day_booking = False
    await test_session.commit()
    disabled = await service.check_slot_availability(operating_tour.id, today, "09:00", 1)
    assert disabled.reason == "same_day_booking_disabled"

    # Reading capacity skips the same-day policy
    capacity_only = await service.check_slot_availability(operating_tour.id, today, "09:00", 0)
    assert capacity_only.available is True

    operating_tour.allow_same_day_booking = True
    operating_tour.same_day_cutoff_time = "07:30"
    await test_session.commit()
    cutoff = await service.check_slot_availability(operating_tour.id, today, "09:00", 1)
    assert cutoff.reason == "same_day_cutoff_passed"

    operating_tour.same_day_cutoff_time = "08:30"
    await test_session.commit()
    before_cutoff = await service.check_slot_availability(operating_tour.id, today, "09:00", 1)
    assert before_cutoff.available is True


@pytest.mark.asyncio
async def test_tour_of_another_organization_is_not_found(test_session, operating_tour, other_organization, clock):
    foreign = TourAvailabilityService(
        test_session, ServiceContext(organization_id=other_organization.id), clock=clock
    )
    with pytest.raises(NotFoundError):
        await foreign.check_slot_availability(operating_tour.id, TUESDAY, "09:00", 1)


# ----------------------------------------------------------------------
# Calendar and heatmap
# ----------------------------------------------------------------------


@pytest.mark.asyncio
async def test_month_lists_operating_and_blacked_out_days(service, test_session, operating_tour, make_booking):
    test_session.add(BlackoutDate(
        organization_id=operating_tour.organization_id,
        tour_id=operating_tour.id,
        date=date(2030, 1, 9),
        reason="Staff training",
    ))
    await test_session.commit()
    await make_booking(TUESDAY, guests=8)

    month = await service.get_available_dates_for_month(operating_tour.id, 2030, 1)

    days = {d.date: d for d in month.dates}
    # Weekdays from the frozen "today" (Mon 7th) to the end of January
    assert len(month.dates) == 19
    assert min(days) == date(2030, 1, 7)
    assert date(2030, 1, 12) not in days
    assert month.operating_days == [1, 2, 3, 4, 5]

    blacked_out = days[date(2030, 1, 9)]
    assert blacked_out.is_blacked_out is True
    assert blacked_out.blackout_reason == "Staff training"
    assert blacked_out.slots == []

    tuesday_slot = days[TUESDAY].slots[0]
    assert tuesday_slot.time == "09:00"
    assert tuesday_slot.label == "Morning"
    assert tuesday_slot.booked_count == 8
    assert tuesday_slot.spots_remaining == 2
    assert tuesday_slot.available is True
    assert tuesday_slot.almost_full is True

    assert days[date(2030, 1, 10)].slots[0].almost_full is False


@pytest.mark.asyncio
async def test_month_of_inactive_tour_is_empty(service, test_session, operating_tour):
    operating_tour.status = TourStatus.DRAFT.value
    await test_session.commit()

    month = await service.get_available_dates_for_month(operating_tour.id, 2030, 1)
    assert month.dates == []
    assert month.operating_days == []


@pytest.mark.asyncio
async def test_heatmap_covers_operating_slots_only(service, test_session, operating_tour, make_booking):
    test_session.add(BlackoutDate(
        organization_id=operating_tour.organization_id,
        tour_id=operating_tour.id,
        date=date(2030, 1, 10),
    ))
    await test_session.commit()
    await make_booking(TUESDAY, guests=8)
    await make_booking(date(2030, 1, 9), guests=10)

    entries = await service.get_capacity_heatmap(TUESDAY, SATURDAY)

    by_date = {e.date: e for e in entries}
    assert sorted(by_date) == [TUESDAY, date(2030, 1, 9), date(2030, 1, 11)]
    assert by_date[TUESDAY].utilization_percent == 80
    assert by_date[TUESDAY].status == "high"
    assert by_date[date(2030, 1, 9)].status == "full"
    assert by_date[date(2030, 1, 11)].status == "empty"
    assert by_date[TUESDAY].tour_name == "Old Town Walk"


@pytest.mark.asyncio
async def test_heatmap_can_be_limited_to_tours(service, operating_tour):
    assert await service.get_capacity_heatmap(TUESDAY, TUESDAY, tour_ids=[uuid4()]) == []
    assert len(await service.get_capacity_heatmap(TUESDAY, TUESDAY, tour_ids=[operating_tour.id])) == 1


# ----------------------------------------------------------------------
# Configuration
# ----------------------------------------------------------------------


@pytest.mark.asyncio
async def test_window_lifecycle(service, tour):
    window = await service.create_availability_window(
        CreateAvailabilityWindowRequest(
            tour_id=tour.id,
            name="Summer",
            start_date=date(2030, 6, 1),
            end_date=date(2030, 8, 31),
            days_of_week=[6, 0, 6],
        )
    )
    assert window.days_of_week == [0, 6]

    updated = await service.update_availability_window(
        window.id,
        UpdateAvailabilityWindowRequest(window_id=window.id, end_date=date(2030, 9, 15), notes="Extended"),
    )
    assert updated.end_date == date(2030, 9, 15)
    assert updated.notes == "Extended"

    with pytest.raises(ValidationError):
        await service.update_availability_window(
            window.id,
            UpdateAvailabilityWindowRequest(window_id=window.id, end_date=date(2030, 5, 1)),
        )

    await service.delete_availability_window(window.id)
    assert await service.list_availability_windows(tour.id) == []
    with pytest.raises(NotFoundError):
        await service.get_window_by_id_or_raise(window.id)


@pytest.mark.asyncio
async def test_departure_times_are_validated_and_unique(service, tour):
    with pytest.raises(ValidationError):
        await service.create_departure_time(CreateDepartureTimeRequest(tour_id=tour.id, time="9am"))

    morning = await service.create_departure_time(CreateDepartureTimeRequest(tour_id=tour.id, time="09:00"))
    afternoon = await service.create_departure_time(
        CreateDepartureTimeRequest(tour_id=tour.id, time="14:00", label="Afternoon")
    )

    with pytest.raises(ValidationError):
        await service.create_departure_time(CreateDepartureTimeRequest(tour_id=tour.id, time="09:00"))
    with pytest.raises(ValidationError):
        await service.update_departure_time(
            afternoon.id, UpdateDepartureTimeRequest(departure_time_id=afternoon.id, time="09:00")
        )

    moved = await service.update_departure_time(
        morning.id, UpdateDepartureTimeRequest(departure_time_id=morning.id, time="09:30", label=None)
    )
    assert moved.time == "09:30"
    assert moved.label is None

    await service.delete_departure_time(afternoon.id)
    assert [d.time for d in await service.list_departure_times(tour.id)] == ["09:30"]


@pytest.mark.asyncio
async def test_blackout_dates_and_config(service, operating_tour):
    blackout = await service.create_blackout_date(
        CreateBlackoutDateRequest(tour_id=operating_tour.id, date=TUESDAY, reason="Holiday")
    )
    with pytest.raises(ValidationError):
        await service.create_blackout_date(CreateBlackoutDateRequest(tour_id=operating_tour.id, date=TUESDAY))

    config = await service.get_tour_availability_config(operating_tour.id)
    assert len(config.windows) == 1
    assert [d.time for d in config.departure_times] == ["09:00"]
    assert [b.date for b in config.blackout_dates] == [TUESDAY]

    later = await service.get_tour_availability_config(
        operating_tour.id, blackout_from=TUESDAY + timedelta(days=1)
    )
    assert later.blackout_dates == []

    await service.delete_blackout_date(blackout.id)
    with pytest.raises(NotFoundError):
        await service.delete_blackout_date(blackout.id)
