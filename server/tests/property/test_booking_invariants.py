"""Property-based tests for booking system invariants."""

from datetime import date, datetime, timedelta

from hypothesis import assume, given
from hypothesis import strategies as st

from tour_crm.models import AvailabilityWindow, BookingStatus
from tour_crm.services import booking_state
from tour_crm.services.availability_service import select_window, utilization_status, weekday_index
from tour_crm.services.booking_command_service import compute_pricing
from tour_crm.services.guide_requirement_service import guides_needed
from tour_crm.services.urgency import Urgency, classify_hours

# Strategies for generating test data
operations = st.sampled_from([
    booking_state.CONFIRM,
    booking_state.CANCEL,
    booking_state.MARK_NO_SHOW,
    booking_state.COMPLETE,
    booking_state.RESCHEDULE,
])
money = st.decimals(min_value=0, max_value=10000, places=2, allow_nan=False, allow_infinity=False)
days = st.dates(min_value=date(2030, 1, 1), max_value=date(2030, 12, 31))

TIER_RANK = {Urgency.CRITICAL: 3, Urgency.HIGH: 2, Urgency.MEDIUM: 1, Urgency.LOW: 0}


@given(st.lists(operations, max_size=12))
def test_terminal_statuses_accept_nothing(sequence):
    """Walking the state machine never leaves completed or cancelled."""
    status = BookingStatus.PENDING.value
    for operation in sequence:
        if not booking_state.is_allowed(operation, status):
            continue
        if status in (BookingStatus.COMPLETED.value, BookingStatus.CANCELLED.value):
            raise AssertionError(f"{operation} allowed from terminal status {status}")
        target = booking_state.TARGET_STATUS.get(operation)
        if target is not None:
            status = target.value

    if status in (BookingStatus.COMPLETED.value, BookingStatus.CANCELLED.value):
        for operation in booking_state.TARGET_STATUS:
            assert not booking_state.is_allowed(operation, status)


@given(
    st.floats(min_value=0, max_value=24 * 60, allow_nan=False),
    st.floats(min_value=0, max_value=24 * 60, allow_nan=False),
)
def test_urgency_never_rises_with_more_time(earlier, later):
    assume(earlier <= later)
    assert TIER_RANK[classify_hours(earlier, True)] >= TIER_RANK[classify_hours(later, True)]


@given(st.floats(max_value=-1e-6, min_value=-1e6, allow_nan=False), st.booleans())
def test_started_tours_are_past(hours, issue):
    assert classify_hours(hours, issue) == Urgency.PAST


@given(st.integers(min_value=1, max_value=2000), st.integers(min_value=1, max_value=100))
def test_guides_cover_every_guest_without_a_spare(booked, per_guide):
    guides = guides_needed(booked, per_guide)
    assert guides * per_guide >= booked
    assert (guides - 1) * per_guide < booked


@given(money, st.integers(min_value=0, max_value=50), money, money)
def test_computed_total_balances(unit_price, adults, discount, tax):
    subtotal, discount_out, tax_out, total = compute_pricing(unit_price, adults, discount=discount, tax=tax)

    assert subtotal == unit_price * adults
    assert total == subtotal - discount_out + tax_out
    assert total.as_tuple().exponent == -2


@given(money, st.integers(min_value=1, max_value=50), money)
def test_caller_total_always_wins(unit_price, adults, total):
    assert compute_pricing(unit_price, adults, total=total)[3] == total


@given(days)
def test_weekday_index_counts_from_sunday(day):
    assert weekday_index(day) == day.isoweekday() % 7


@given(st.floats(min_value=0, max_value=200, allow_nan=False))
def test_utilization_status_is_known(percent):
    assert utilization_status(percent) in {"empty", "low", "moderate", "high", "full"}


@st.composite
def windows(draw):
    start = draw(days)
    open_ended = draw(st.booleans())
    end = None if open_ended else start + timedelta(days=draw(st.integers(min_value=0, max_value=200)))
    return AvailabilityWindow(
        start_date=start,
        end_date=end,
        days_of_week=sorted(draw(st.sets(st.integers(min_value=0, max_value=6), min_size=1))),
        is_active=draw(st.booleans()),
        created_at=datetime(2029, 1, 1) + timedelta(minutes=draw(st.integers(min_value=0, max_value=10_000))),
    )


def _span(window):
    return float("inf") if window.end_date is None else (window.end_date - window.start_date).days


@given(st.lists(windows(), max_size=6), days)
def test_selected_window_is_the_narrowest_covering_one(candidates, day):
    chosen = select_window(candidates, day)
    covering = [w for w in candidates if w.is_active and w.covers(day)]

    if not covering:
        assert chosen is None
        return
    assert chosen in covering
    assert _span(chosen) == min(_span(w) for w in covering)

