"""Dashboard views over bookings: totals, urgency tiers and upcoming days."""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from typing import Callable, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import settings
from ..core.dependencies import ServiceContext
from ..models.booking import Booking, BookingStatus, PaymentStatus
from .booking_query_service import BookingQueryService
from .urgency import (
    SETTLED_PAYMENT_STATUSES,
    Urgency,
    as_utc,
    classify_hours,
    format_time_until,
    has_issue,
    hours_until,
    tour_datetime,
)

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")
UNPAID_PAYMENT_STATUSES = frozenset({
    PaymentStatus.PENDING.value,
    PaymentStatus.PARTIAL.value,
    PaymentStatus.FAILED.value,
})
ACTIONABLE_TIERS = (Urgency.CRITICAL, Urgency.HIGH, Urgency.MEDIUM, Urgency.LOW)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _money(value) -> Decimal:
    return Decimal(str(value or 0)).quantize(CENTS)


def day_label(day: date, today: date) -> str:
    """``Today``, ``Tomorrow`` or a short date such as ``Mon Jan 5``."""
    if day == today:
        return "Today"
    if day == today + timedelta(days=1):
        return "Tomorrow"
    return f"{day.strftime('%a %b')} {day.day}"


def is_unpaid(booking: Booking) -> bool:
    return (
        booking.status == BookingStatus.CONFIRMED.value
        and booking.payment_status in UNPAID_PAYMENT_STATUSES
    )


@dataclass
class BookingStats:
    total: int
    pending: int
    confirmed: int
    completed: int
    cancelled: int
    no_show: int
    total_revenue: Decimal
    average_booking_value: Decimal
    total_participants: int


@dataclass
class BookingUrgency:
    booking: Booking
    urgency: str
    hours_until: Optional[float]
    time_until: Optional[str]


@dataclass
class UrgencyStats:
    needs_action: int = 0
    critical: int = 0
    pending_confirmation: int = 0
    unpaid: int = 0


@dataclass
class UrgencyGroups:
    critical: List[BookingUrgency] = field(default_factory=list)
    high: List[BookingUrgency] = field(default_factory=list)
    medium: List[BookingUrgency] = field(default_factory=list)
    low: List[BookingUrgency] = field(default_factory=list)
    stats: UrgencyStats = field(default_factory=UrgencyStats)


@dataclass
class NeedsAction:
    unconfirmed: List[Booking]
    unpaid: List[Booking]

    @property
    def total(self) -> int:
        return len(self.unconfirmed) + len(self.unpaid)


@dataclass
class UpcomingDayStats:
    total: int
    guests: int
    revenue: Decimal
    needs_action: int


@dataclass
class UpcomingDay:
    date: date
    label: str
    bookings: List[Booking]
    stats: UpcomingDayStats


@dataclass
class UpcomingBookings:
    days: List[UpcomingDay]


@dataclass
class TodayBookings:
    date: date
    bookings: List[BookingUrgency]


class BookingStatsService:
    """Read-only dashboard aggregates; every view is computed fresh."""

    def __init__(
        self,
        db: AsyncSession,
        ctx: ServiceContext,
        clock: Optional[Callable[[], datetime]] = None,
        lookahead_days: Optional[int] = None,
    ):
        self.db = db
        self.organization_id = ctx.organization_id
        self._clock = clock or _utcnow
        self.lookahead_days = settings.urgency_lookahead_days if lookahead_days is None else lookahead_days
        self.queries = BookingQueryService(db, ctx, clock=self._clock)

    def _now(self) -> datetime:
        return as_utc(self._clock())

    async def get_stats(self, date_from: Optional[date] = None, date_to: Optional[date] = None) -> BookingStats:
        """
        Counts per status plus revenue, from a single aggregate query.

        Revenue, participants and the average only count bookings that were
        not cancelled. The optional range filters on creation date.
        """
        live = Booking.status != BookingStatus.CANCELLED.value
        stmt = select(
            func.count().label("total"),
            func.count().filter(Booking.status == BookingStatus.PENDING.value).label("pending"),
            func.count().filter(Booking.status == BookingStatus.CONFIRMED.value).label("confirmed"),
            func.count().filter(Booking.status == BookingStatus.COMPLETED.value).label("completed"),
            func.count().filter(Booking.status == BookingStatus.CANCELLED.value).label("cancelled"),
            func.count().filter(Booking.status == BookingStatus.NO_SHOW.value).label("no_show"),
            func.count().filter(live).label("live"),
            func.coalesce(func.sum(Booking.total).filter(live), 0).label("revenue"),
            func.coalesce(func.sum(Booking.total_participants).filter(live), 0).label("participants"),
        ).where(Booking.organization_id == self.organization_id)

        if date_from:
            stmt = stmt.where(Booking.created_at >= datetime.combine(date_from, time.min))
        if date_to:
            stmt = stmt.where(Booking.created_at < datetime.combine(date_to + timedelta(days=1), time.min))

        row = (await self.db.execute(stmt)).one()
        revenue = _money(row.revenue)
        average = _money(revenue / row.live) if row.live else _money(0)

        return BookingStats(
            total=row.total,
            pending=row.pending,
            confirmed=row.confirmed,
            completed=row.completed,
            cancelled=row.cancelled,
            no_show=row.no_show,
            total_revenue=revenue,
            average_booking_value=average,
            total_participants=int(row.participants),
        )

    async def _upcoming_window(self) -> List[Booking]:
        today = self._now().date()
        return await self.queries.get_bookings_between(today, today + timedelta(days=self.lookahead_days))

    async def get_grouped_by_urgency(self) -> UrgencyGroups:
        """Pending and confirmed bookings of the lookahead window, bucketed by urgency tier."""
        now = self._now()
        groups = UrgencyGroups()
        buckets: Dict[str, List[BookingUrgency]] = {
            Urgency.CRITICAL.value: groups.critical,
            Urgency.HIGH.value: groups.high,
            Urgency.MEDIUM.value: groups.medium,
            Urgency.LOW.value: groups.low,
        }

        for booking in await self._upcoming_window():
            # Counted over the whole window, whatever the tier
            if booking.status == BookingStatus.PENDING.value:
                groups.stats.pending_confirmation += 1
            if booking.payment_status not in SETTLED_PAYMENT_STATUSES:
                groups.stats.unpaid += 1

            hours = hours_until(booking, now)
            if hours is None:
                continue
            tier = classify_hours(hours, has_issue(booking))
            if tier not in ACTIONABLE_TIERS:
                continue
            buckets[tier.value].append(
                BookingUrgency(
                    booking=booking,
                    urgency=tier.value,
                    hours_until=round(hours, 2),
                    time_until=format_time_until(hours),
                )
            )

        for bucket in buckets.values():
            bucket.sort(key=lambda item: item.hours_until)

        groups.stats.critical = len(groups.critical)
        groups.stats.needs_action = sum(len(bucket) for bucket in buckets.values())
        return groups

    async def get_needs_action(self) -> NeedsAction:
        """Upcoming bookings still waiting on a confirmation or a payment."""
        now = self._now()
        unconfirmed: List[Booking] = []
        unpaid: List[Booking] = []

        for booking in await self._upcoming_window():
            starts = tour_datetime(booking)
            if starts is None or starts < now:
                continue
            if booking.status == BookingStatus.PENDING.value:
                unconfirmed.append(booking)
            elif is_unpaid(booking):
                unpaid.append(booking)

        return NeedsAction(unconfirmed=unconfirmed, unpaid=unpaid)

    async def get_upcoming(self, days: int = 7) -> UpcomingBookings:
        """Bookings of the next ``days`` days, today included, grouped per tour date."""
        today = self._now().date()
        bookings = await self.queries.get_bookings_between(today, today + timedelta(days=days - 1))

        by_day: Dict[date, List[Booking]] = defaultdict(list)
        for booking in bookings:
            starts = tour_datetime(booking)
            if starts is not None:
                by_day[starts.date()].append(booking)

        upcoming = []
        for day in sorted(by_day):
            day_bookings = sorted(by_day[day], key=tour_datetime)
            upcoming.append(
                UpcomingDay(
                    date=day,
                    label=day_label(day, today),
                    bookings=day_bookings,
                    stats=UpcomingDayStats(
                        total=len(day_bookings),
                        guests=sum(b.total_participants for b in day_bookings),
                        revenue=_money(sum((b.total for b in day_bookings), Decimal("0"))),
                        needs_action=sum(1 for b in day_bookings if has_issue(b)),
                    ),
                )
            )
        return UpcomingBookings(days=upcoming)

    async def get_today_with_urgency(self) -> TodayBookings:
        """Today's bookings, each with its urgency and a countdown to departure."""
        now = self._now()
        items = []
        for booking in await self.queries.get_todays_bookings():
            hours = hours_until(booking, now)
            if hours is None:
                continue
            items.append(
                BookingUrgency(
                    booking=booking,
                    urgency=classify_hours(hours, has_issue(booking)).value,
                    hours_until=round(hours, 2),
                    time_until=format_time_until(hours),
                )
            )
        items.sort(key=lambda item: item.hours_until)
        return TodayBookings(date=now.date(), bookings=items)
