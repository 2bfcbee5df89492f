"""Operational urgency tiers for at-risk bookings."""

from datetime import date, datetime, time, timezone
from enum import Enum
from typing import Optional, Protocol


class Urgency(str, Enum):
    """Urgency tier, ordered from most to least pressing."""
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    NONE = "none"
    PAST = "past"


# Upper bounds in hours, inclusive
CRITICAL_HOURS = 24
HIGH_HOURS = 48
MEDIUM_HOURS = 168

SETTLED_PAYMENT_STATUSES = frozenset({"paid", "refunded"})


class _ScheduleLike(Protocol):
    starts_at: Optional[datetime]


class BookingLike(Protocol):
    status: str
    payment_status: str
    booking_date: Optional[date]
    booking_time: Optional[str]
    schedule: Optional[_ScheduleLike]


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes, convert aware ones."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_time_of_day(value: str) -> time:
    hours, minutes = value.split(":")[:2]
    return time(int(hours), int(minutes))


def tour_datetime(booking: BookingLike) -> Optional[datetime]:
    """Start of the tour run: the schedule start, else booking date plus time."""
    schedule = getattr(booking, "schedule", None)
    if schedule is not None and schedule.starts_at is not None:
        return as_utc(schedule.starts_at)
    if booking.booking_date is not None and booking.booking_time:
        return datetime.combine(
            booking.booking_date,
            parse_time_of_day(booking.booking_time),
            tzinfo=timezone.utc,
        )
    return None


def has_issue(booking: BookingLike) -> bool:
    """Unconfirmed or not yet settled."""
    return (
        _value(booking.status) == "pending"
        or _value(booking.payment_status) not in SETTLED_PAYMENT_STATUSES
    )


def classify_hours(hours_until: float, issue: bool) -> Urgency:
    """Bucket a booking by hours until the tour starts."""
    if hours_until < 0:
        return Urgency.PAST
    if not issue:
        return Urgency.NONE
    if hours_until <= CRITICAL_HOURS:
        return Urgency.CRITICAL
    if hours_until <= HIGH_HOURS:
        return Urgency.HIGH
    if hours_until <= MEDIUM_HOURS:
        return Urgency.MEDIUM
    return Urgency.LOW


def hours_until(booking: BookingLike, now: datetime) -> Optional[float]:
    starts = tour_datetime(booking)
    if starts is None:
        return None
    return (starts - as_utc(now)).total_seconds() / 3600


def classify(booking: BookingLike, now: datetime) -> Urgency:
    """Classify ``booking`` relative to ``now``."""
    hours = hours_until(booking, now)
    if hours is None:
        return Urgency.NONE
    return classify_hours(hours, has_issue(booking))


def format_time_until(hours: float) -> str:
    """Countdown label such as ``In 3h 20m``; ``Started`` once the tour has begun."""
    if hours < 0:
        return "Started"
    total_minutes = int(hours * 60)
    hrs, minutes = divmod(total_minutes, 60)
    if hrs > 0:
        return f"In {hrs}h {minutes}m"
    return f"In {minutes}m"


def _value(field) -> str:
    return field.value if isinstance(field, Enum) else str(field)
