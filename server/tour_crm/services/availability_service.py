"""Tour availability engine: slot checks, calendar months, capacity heatmap."""

import calendar
import logging
import re
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy import and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import settings
from ..core.dependencies import ServiceContext
from ..core.exceptions import NotFoundError, ValidationError
from ..models.availability import AvailabilityWindow, BlackoutDate, DepartureTime
from ..models.booking import ACTIVE_BOOKING_STATUSES, Booking
from ..models.tour import Tour, TourStatus
from ..schemas.availability import (
    CreateAvailabilityWindowRequest,
    CreateBlackoutDateRequest,
    CreateDepartureTimeRequest,
    UpdateAvailabilityWindowRequest,
    UpdateDepartureTimeRequest,
)
from .urgency import parse_time_of_day

logger = logging.getLogger(__name__)

TIME_FORMAT = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")
TIME_FORMAT_MESSAGE = "Time must be in HH:MM format (e.g., '09:00')"


class AvailabilityReason(str, Enum):
    """Why a slot cannot take the requested guests."""
    TOUR_INACTIVE = "tour_inactive"
    PAST_DATE = "past_date"
    SAME_DAY_BOOKING_DISABLED = "same_day_booking_disabled"
    SAME_DAY_CUTOFF_PASSED = "same_day_cutoff_passed"
    BLACKOUT = "blackout"
    NOT_OPERATING = "not_operating"
    SOLD_OUT = "sold_out"
    INSUFFICIENT_CAPACITY = "insufficient_capacity"


AVAILABILITY_REASON_MESSAGES: Dict[str, str] = {
    "tour_inactive": "This tour is not active and cannot be booked",
    "past_date": "Cannot book a date in the past",
    "same_day_booking_disabled": "Same-day booking is disabled for this tour",
    "same_day_cutoff_passed": "Same-day booking cutoff has passed for this tour",
    "blackout": "Tour is not available on this date",
    "not_operating": "Tour does not operate on this date",
    "sold_out": "This tour is sold out",
    "insufficient_capacity": "Not enough spots. Only {spots_remaining} spots remaining.",
}

# Per-action wording that differs from the defaults above
_ACTION_MESSAGES: Dict[str, Dict[str, str]] = {
    "update": {
        "past_date": "Cannot update participants for a date in the past",
        "insufficient_capacity": (
            "Not enough spots. Only {spots_remaining} additional spots remaining."
        ),
    },
    "reschedule": {
        "past_date": "Cannot reschedule to a date in the past",
    },
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class SlotAvailability:
    """Outcome of a single slot check."""
    available: bool
    spots_remaining: int
    max_capacity: int
    booked_count: int
    reason: Optional[str] = None


@dataclass
class DateSlot:
    time: str
    label: Optional[str]
    spots_remaining: int
    max_capacity: int
    booked_count: int
    available: bool
    almost_full: bool


@dataclass
class AvailableDate:
    date: date
    slots: List[DateSlot] = field(default_factory=list)
    is_blacked_out: bool = False
    blackout_reason: Optional[str] = None


@dataclass
class MonthAvailability:
    tour_id: str
    tour_name: str
    year: int
    month: int
    dates: List[AvailableDate]
    operating_days: List[int]


@dataclass
class CapacityHeatmapEntry:
    date: date
    time: str
    tour_id: str
    tour_name: str
    max_capacity: int
    booked_count: int
    utilization_percent: int
    status: str


@dataclass
class TourAvailabilityConfig:
    tour_id: UUID
    windows: List[AvailabilityWindow]
    departure_times: List[DepartureTime]
    blackout_dates: List[BlackoutDate]


def unavailable_message(result: SlotAvailability, action: str = "book") -> str:
    """Translate an unavailable slot into the message shown to the user."""
    reason = result.reason
    template = _ACTION_MESSAGES.get(action, {}).get(reason) or AVAILABILITY_REASON_MESSAGES.get(reason)
    if template is None:
        return "Slot is not available"
    return template.format(spots_remaining=result.spots_remaining)


def weekday_index(day: date) -> int:
    """Weekday number with 0 = Sunday."""
    return (day.weekday() + 1) % 7


def _window_span(window: AvailabilityWindow) -> float:
    if window.end_date is None:
        return float("inf")
    return (window.end_date - window.start_date).days


def select_window(windows: Iterable[AvailabilityWindow], day: date) -> Optional[AvailabilityWindow]:
    """
    Pick the window that governs ``day``.

    Among active windows covering the day the narrowest date range wins; an
    open-ended window counts as the widest. Ties go to the latest start date,
    then to the most recently created window.
    """
    candidates = [w for w in windows if w.is_active and w.covers(day)]
    if not candidates:
        return None
    newest_first = sorted(
        candidates,
        key=lambda w: (w.start_date, w.created_at or datetime.min),
        reverse=True,
    )
    # min() keeps the first of equal spans
    return min(newest_first, key=_window_span)


def utilization_status(percent: float) -> str:
    if percent >= 100:
        return "full"
    if percent >= 75:
        return "high"
    if percent >= 40:
        return "moderate"
    if percent > 0:
        return "low"
    return "empty"


def validate_time_format(value: str) -> str:
    if not TIME_FORMAT.match(value or ""):
        raise ValidationError(TIME_FORMAT_MESSAGE)
    return value


class TourAvailabilityService:
    """
    Availability engine for the dynamic capacity model.

    Every check reads from storage; nothing is cached between calls. Results
    are advisory: the dynamic model has no write-time guard, so two bookers can
    both pass a check for the last spots.
    """

    def __init__(
        self,
        db: AsyncSession,
        ctx: ServiceContext,
        clock: Optional[Callable[[], datetime]] = None,
        almost_full_threshold: Optional[int] = None,
    ):
        self.db = db
        self.ctx = ctx
        self.organization_id = ctx.organization_id
        self._clock = clock or _utcnow
        self.almost_full_threshold = (
            settings.almost_full_threshold if almost_full_threshold is None else almost_full_threshold
        )

    def _now(self) -> datetime:
        now = self._clock()
        if now.tzinfo is None:
            return now.replace(tzinfo=timezone.utc)
        return now.astimezone(timezone.utc)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def get_tour_by_id_or_raise(self, tour_id: UUID) -> Tour:
        stmt = select(Tour).where(
            Tour.id == tour_id,
            Tour.organization_id == self.organization_id,
        )
        result = await self.db.execute(stmt)
        tour = result.scalar_one_or_none()
        if not tour:
            logger.warning(
                "Tour not found",
                extra={"tour_id": str(tour_id), "organization_id": str(self.organization_id)}
            )
            raise NotFoundError(resource_type="tour", resource_id=str(tour_id))
        return tour

    async def _active_windows(self, tour_ids: Sequence[UUID]) -> Dict[UUID, List[AvailabilityWindow]]:
        stmt = select(AvailabilityWindow).where(
            AvailabilityWindow.organization_id == self.organization_id,
            AvailabilityWindow.tour_id.in_(tour_ids),
            AvailabilityWindow.is_active.is_(True),
        )
        result = await self.db.execute(stmt)
        grouped: Dict[UUID, List[AvailabilityWindow]] = defaultdict(list)
        for window in result.scalars():
            grouped[window.tour_id].append(window)
        return grouped

    async def _active_departure_times(self, tour_ids: Sequence[UUID]) -> Dict[UUID, List[DepartureTime]]:
        stmt = (
            select(DepartureTime)
            .where(
                DepartureTime.organization_id == self.organization_id,
                DepartureTime.tour_id.in_(tour_ids),
                DepartureTime.is_active.is_(True),
            )
            .order_by(DepartureTime.sort_order, DepartureTime.time)
        )
        result = await self.db.execute(stmt)
        grouped: Dict[UUID, List[DepartureTime]] = defaultdict(list)
        for departure in result.scalars():
            grouped[departure.tour_id].append(departure)
        return grouped

    async def _blackouts(
        self,
        tour_ids: Sequence[UUID],
        start: date,
        end: date,
    ) -> Dict[Tuple[UUID, date], BlackoutDate]:
        stmt = select(BlackoutDate).where(
            BlackoutDate.organization_id == self.organization_id,
            BlackoutDate.tour_id.in_(tour_ids),
            BlackoutDate.date >= start,
            BlackoutDate.date <= end,
        )
        result = await self.db.execute(stmt)
        return {(b.tour_id, b.date): b for b in result.scalars()}

    async def get_booked_count_for_slot(
        self,
        tour_id: UUID,
        day: date,
        time: str,
        exclude_booking_id: Optional[UUID] = None,
    ) -> int:
        """Sum of participants over pending and confirmed bookings in one slot."""
        conditions = [
            Booking.organization_id == self.organization_id,
            Booking.tour_id == tour_id,
            Booking.booking_date == day,
            Booking.booking_time == time,
            Booking.status.in_(ACTIVE_BOOKING_STATUSES),
        ]
        if exclude_booking_id:
            conditions.append(Booking.id != exclude_booking_id)

        stmt = select(func.coalesce(func.sum(Booking.total_participants), 0)).where(and_(*conditions))
        result = await self.db.execute(stmt)
        return int(result.scalar_one())

    async def _booking_counts(
        self,
        tour_ids: Sequence[UUID],
        start: date,
        end: date,
    ) -> Dict[Tuple[UUID, date, str], int]:
        """One grouped aggregate over every slot of ``tour_ids`` in the range."""
        stmt = (
            select(
                Booking.tour_id,
                Booking.booking_date,
                Booking.booking_time,
                func.coalesce(func.sum(Booking.total_participants), 0),
            )
            .where(
                Booking.organization_id == self.organization_id,
                Booking.tour_id.in_(tour_ids),
                Booking.booking_date >= start,
                Booking.booking_date <= end,
                Booking.status.in_(ACTIVE_BOOKING_STATUSES),
            )
            .group_by(Booking.tour_id, Booking.booking_date, Booking.booking_time)
        )
        result = await self.db.execute(stmt)
        counts: Dict[Tuple[UUID, date, str], int] = {}
        for tour_id, booking_date, booking_time, total in result.all():
            if booking_date is not None and booking_time:
                counts[(tour_id, booking_date, booking_time)] = int(total)
        return counts

    # ------------------------------------------------------------------
    # Day-level rules
    # ------------------------------------------------------------------

    def _day_restriction(self, tour: Tour, day: date) -> Optional[AvailabilityReason]:
        now = self._now()
        today = now.date()
        if day < today:
            return AvailabilityReason.PAST_DATE
        if day != today:
            return None
        if tour.allow_same_day_booking is False:
            return AvailabilityReason.SAME_DAY_BOOKING_DISABLED
        if tour.same_day_cutoff_time and TIME_FORMAT.match(tour.same_day_cutoff_time):
            if now.time().replace(second=0, microsecond=0) >= parse_time_of_day(tour.same_day_cutoff_time):
                return AvailabilityReason.SAME_DAY_CUTOFF_PASSED
        return None

    # ------------------------------------------------------------------
    # Slot check
    # ------------------------------------------------------------------

    async def check_slot_availability(
        self,
        tour_id: UUID,
        day: date,
        time: str,
        requested_spots: int,
        exclude_booking_id: Optional[UUID] = None,
    ) -> SlotAvailability:
        """
        Decide whether ``requested_spots`` guests fit into one slot.

        Pass ``requested_spots=0`` to read capacity without same-day rules.

        Raises:
            NotFoundError: If the tour is not in the caller's organization
        """
        tour = await self.get_tour_by_id_or_raise(tour_id)
        max_capacity = tour.max_participants

        def closed(reason: AvailabilityReason, capacity: int = max_capacity) -> SlotAvailability:
            return SlotAvailability(
                available=False,
                spots_remaining=0,
                max_capacity=capacity,
                booked_count=0,
                reason=reason.value,
            )

        if tour.status != TourStatus.ACTIVE:
            return closed(AvailabilityReason.TOUR_INACTIVE)

        today = self._now().date()
        if day < today:
            return closed(AvailabilityReason.PAST_DATE)

        if requested_spots > 0:
            restriction = self._day_restriction(tour, day)
            if restriction:
                return closed(restriction)

        blackouts = await self._blackouts([tour.id], day, day)
        if (tour.id, day) in blackouts:
            return closed(AvailabilityReason.BLACKOUT)

        windows = await self._active_windows([tour.id])
        window = select_window(windows.get(tour.id, []), day)
        if window is None:
            return closed(AvailabilityReason.NOT_OPERATING)

        if window.max_participants_override:
            max_capacity = window.max_participants_override

        departures = await self._active_departure_times([tour.id])
        if not any(d.time == time for d in departures.get(tour.id, [])):
            return closed(AvailabilityReason.NOT_OPERATING, max_capacity)

        booked_count = await self.get_booked_count_for_slot(tour.id, day, time, exclude_booking_id)
        spots_remaining = max_capacity - booked_count

        if spots_remaining < requested_spots:
            return SlotAvailability(
                available=False,
                spots_remaining=spots_remaining,
                max_capacity=max_capacity,
                booked_count=booked_count,
                reason=(
                    AvailabilityReason.SOLD_OUT.value
                    if spots_remaining <= 0
                    else AvailabilityReason.INSUFFICIENT_CAPACITY.value
                ),
            )

        return SlotAvailability(
            available=True,
            spots_remaining=spots_remaining,
            max_capacity=max_capacity,
            booked_count=booked_count,
        )

    async def get_slot_unit_price(self, tour: Tour, day: date):
        """Window price override for ``day``, else the tour's base price."""
        windows = await self._active_windows([tour.id])
        window = select_window(windows.get(tour.id, []), day)
        if window is not None and window.price_override is not None:
            return window.price_override
        return tour.base_price

    # ------------------------------------------------------------------
    # Calendar
    # ------------------------------------------------------------------

    async def get_available_dates_for_month(self, tour_id: UUID, year: int, month: int) -> MonthAvailability:
        """
        List the bookable days of a month with their slots.

        Past days and days no window covers are left out. Blackout days are
        listed with no slots so calendars can show why they are closed.
        """
        tour = await self.get_tour_by_id_or_raise(tour_id)

        if tour.status != TourStatus.ACTIVE:
            return MonthAvailability(
                tour_id=str(tour.id),
                tour_name=tour.name,
                year=year,
                month=month,
                dates=[],
                operating_days=[],
            )

        first_day = date(year, month, 1)
        last_day = date(year, month, calendar.monthrange(year, month)[1])

        windows = (await self._active_windows([tour.id])).get(tour.id, [])
        departures = (await self._active_departure_times([tour.id])).get(tour.id, [])
        blackouts = await self._blackouts([tour.id], first_day, last_day)
        counts = await self._booking_counts([tour.id], first_day, last_day)

        operating_days = sorted({d for w in windows for d in (w.days_of_week or [])})
        today = self._now().date()

        dates: List[AvailableDate] = []
        day = first_day
        while day <= last_day:
            if day < today:
                day += timedelta(days=1)
                continue

            blackout = blackouts.get((tour.id, day))
            if blackout is not None:
                dates.append(AvailableDate(
                    date=day,
                    is_blacked_out=True,
                    blackout_reason=blackout.reason,
                ))
                day += timedelta(days=1)
                continue

            window = select_window(windows, day)
            if window is None:
                day += timedelta(days=1)
                continue

            restriction = self._day_restriction(tour, day)
            same_day_blocked = restriction in (
                AvailabilityReason.SAME_DAY_BOOKING_DISABLED,
                AvailabilityReason.SAME_DAY_CUTOFF_PASSED,
            )
            max_capacity = window.max_participants_override or tour.max_participants

            slots = []
            for departure in departures:
                booked = counts.get((tour.id, day, departure.time), 0)
                remaining = max_capacity - booked
                slots.append(DateSlot(
                    time=departure.time,
                    label=departure.label,
                    spots_remaining=remaining,
                    max_capacity=max_capacity,
                    booked_count=booked,
                    available=not same_day_blocked and remaining > 0,
                    almost_full=(
                        not same_day_blocked
                        and 0 < remaining <= self.almost_full_threshold
                    ),
                ))

            dates.append(AvailableDate(date=day, slots=slots))
            day += timedelta(days=1)

        return MonthAvailability(
            tour_id=str(tour.id),
            tour_name=tour.name,
            year=year,
            month=month,
            dates=dates,
            operating_days=operating_days,
        )

    # ------------------------------------------------------------------
    # Heatmap
    # ------------------------------------------------------------------

    async def get_capacity_heatmap(
        self,
        start: date,
        end: date,
        tour_ids: Optional[Sequence[UUID]] = None,
    ) -> List[CapacityHeatmapEntry]:
        """Utilization of every operating slot of active tours in ``[start, end]``."""
        stmt = select(Tour).where(
            Tour.organization_id == self.organization_id,
            Tour.status == TourStatus.ACTIVE,
        )
        if tour_ids:
            stmt = stmt.where(Tour.id.in_(list(tour_ids)))
        result = await self.db.execute(stmt.order_by(Tour.name))
        tours = list(result.scalars())
        if not tours:
            return []

        ids = [t.id for t in tours]
        windows = await self._active_windows(ids)
        departures = await self._active_departure_times(ids)
        blackouts = await self._blackouts(ids, start, end)
        counts = await self._booking_counts(ids, start, end)

        entries: List[CapacityHeatmapEntry] = []
        day = start
        while day <= end:
            for tour in tours:
                if (tour.id, day) in blackouts:
                    continue
                window = select_window(windows.get(tour.id, []), day)
                if window is None:
                    continue
                max_capacity = window.max_participants_override or tour.max_participants
                for departure in departures.get(tour.id, []):
                    booked = counts.get((tour.id, day, departure.time), 0)
                    utilization = (booked / max_capacity) * 100 if max_capacity > 0 else 0
                    entries.append(CapacityHeatmapEntry(
                        date=day,
                        time=departure.time,
                        tour_id=str(tour.id),
                        tour_name=tour.name,
                        max_capacity=max_capacity,
                        booked_count=booked,
                        utilization_percent=round(utilization),
                        status=utilization_status(utilization),
                    ))
            day += timedelta(days=1)

        logger.info(
            "Capacity heatmap computed",
            extra={
                "organization_id": str(self.organization_id),
                "tours": len(tours),
                "entries": len(entries),
                "start": start.isoformat(),
                "end": end.isoformat(),
            }
        )
        return entries

    # ------------------------------------------------------------------
    # Availability windows
    # ------------------------------------------------------------------

    async def create_availability_window(self, request: CreateAvailabilityWindowRequest) -> AvailabilityWindow:
        await self.get_tour_by_id_or_raise(request.tour_id)

        window = AvailabilityWindow(
            organization_id=self.organization_id,
            **request.model_dump(),
        )
        self.db.add(window)
        await self.db.commit()
        await self.db.refresh(window)

        logger.info(
            "Availability window created",
            extra={
                "window_id": str(window.id),
                "tour_id": str(window.tour_id),
                "start_date": window.start_date.isoformat(),
                "end_date": window.end_date.isoformat() if window.end_date else None,
            }
        )
        return window

    async def get_window_by_id_or_raise(self, window_id: UUID) -> AvailabilityWindow:
        stmt = select(AvailabilityWindow).where(
            AvailabilityWindow.id == window_id,
            AvailabilityWindow.organization_id == self.organization_id,
        )
        result = await self.db.execute(stmt)
        window = result.scalar_one_or_none()
        if not window:
            raise NotFoundError(resource_type="availability_window", resource_id=str(window_id))
        return window

    async def update_availability_window(
        self,
        window_id: UUID,
        request: UpdateAvailabilityWindowRequest,
    ) -> AvailabilityWindow:
        window = await self.get_window_by_id_or_raise(window_id)

        changes = request.model_dump(exclude_unset=True, exclude={"window_id"})
        for key, value in changes.items():
            if value is None and key in ("start_date", "days_of_week", "is_active"):
                continue
            setattr(window, key, value)

        if window.end_date is not None and window.end_date < window.start_date:
            await self.db.rollback()
            raise ValidationError("End date must be on or after start date")

        await self.db.commit()
        await self.db.refresh(window)

        logger.info("Availability window updated", extra={"window_id": str(window.id)})
        return window

    async def delete_availability_window(self, window_id: UUID) -> None:
        window = await self.get_window_by_id_or_raise(window_id)
        await self.db.delete(window)
        await self.db.commit()
        logger.info("Availability window deleted", extra={"window_id": str(window_id)})

    async def list_availability_windows(self, tour_id: UUID) -> List[AvailabilityWindow]:
        stmt = (
            select(AvailabilityWindow)
            .where(
                AvailabilityWindow.organization_id == self.organization_id,
                AvailabilityWindow.tour_id == tour_id,
            )
            .order_by(AvailabilityWindow.start_date, AvailabilityWindow.created_at)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars())

    # ------------------------------------------------------------------
    # Departure times
    # ------------------------------------------------------------------

    async def _departure_time_exists(
        self,
        tour_id: UUID,
        time: str,
        exclude_id: Optional[UUID] = None,
    ) -> bool:
        stmt = select(DepartureTime.id).where(
            DepartureTime.organization_id == self.organization_id,
            DepartureTime.tour_id == tour_id,
            DepartureTime.time == time,
        )
        if exclude_id:
            stmt = stmt.where(DepartureTime.id != exclude_id)
        result = await self.db.execute(stmt)
        return result.first() is not None

    async def create_departure_time(self, request: CreateDepartureTimeRequest) -> DepartureTime:
        validate_time_format(request.time)
        await self.get_tour_by_id_or_raise(request.tour_id)

        if await self._departure_time_exists(request.tour_id, request.time):
            raise ValidationError(f"Departure time {request.time} already exists for this tour")

        departure = DepartureTime(
            organization_id=self.organization_id,
            **request.model_dump(),
        )
        self.db.add(departure)
        await self.db.commit()
        await self.db.refresh(departure)

        logger.info(
            "Departure time created",
            extra={"departure_time_id": str(departure.id), "tour_id": str(departure.tour_id), "time": departure.time}
        )
        return departure

    async def get_departure_time_by_id_or_raise(self, departure_time_id: UUID) -> DepartureTime:
        stmt = select(DepartureTime).where(
            DepartureTime.id == departure_time_id,
            DepartureTime.organization_id == self.organization_id,
        )
        result = await self.db.execute(stmt)
        departure = result.scalar_one_or_none()
        if not departure:
            raise NotFoundError(resource_type="departure_time", resource_id=str(departure_time_id))
        return departure

    async def update_departure_time(
        self,
        departure_time_id: UUID,
        request: UpdateDepartureTimeRequest,
    ) -> DepartureTime:
        if request.time is not None:
            validate_time_format(request.time)

        departure = await self.get_departure_time_by_id_or_raise(departure_time_id)
        if request.time is not None and request.time != departure.time:
            if await self._departure_time_exists(departure.tour_id, request.time, exclude_id=departure.id):
                raise ValidationError(f"Departure time {request.time} already exists for this tour")

        changes = request.model_dump(exclude_unset=True, exclude={"departure_time_id"})
        for key, value in changes.items():
            if value is None and key != "label":
                continue
            setattr(departure, key, value)

        await self.db.commit()
        await self.db.refresh(departure)
        return departure

    async def delete_departure_time(self, departure_time_id: UUID) -> None:
        departure = await self.get_departure_time_by_id_or_raise(departure_time_id)
        await self.db.delete(departure)
        await self.db.commit()
        logger.info("Departure time deleted", extra={"departure_time_id": str(departure_time_id)})

    async def list_departure_times(self, tour_id: UUID) -> List[DepartureTime]:
        stmt = (
            select(DepartureTime)
            .where(
                DepartureTime.organization_id == self.organization_id,
                DepartureTime.tour_id == tour_id,
            )
            .order_by(DepartureTime.sort_order, DepartureTime.time)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars())

    # ------------------------------------------------------------------
    # Blackout dates
    # ------------------------------------------------------------------

    async def create_blackout_date(self, request: CreateBlackoutDateRequest) -> BlackoutDate:
        await self.get_tour_by_id_or_raise(request.tour_id)

        existing = await self._blackouts([request.tour_id], request.date, request.date)
        if existing:
            raise ValidationError(f"{request.date.isoformat()} is already blacked out for this tour")

        blackout = BlackoutDate(
            organization_id=self.organization_id,
            tour_id=request.tour_id,
            date=request.date,
            reason=request.reason,
        )
        self.db.add(blackout)
        await self.db.commit()
        await self.db.refresh(blackout)

        logger.info(
            "Blackout date created",
            extra={"blackout_date_id": str(blackout.id), "tour_id": str(blackout.tour_id), "date": blackout.date.isoformat()}
        )
        return blackout

    async def delete_blackout_date(self, blackout_date_id: UUID) -> None:
        stmt = select(BlackoutDate).where(
            BlackoutDate.id == blackout_date_id,
            BlackoutDate.organization_id == self.organization_id,
        )
        result = await self.db.execute(stmt)
        blackout = result.scalar_one_or_none()
        if not blackout:
            raise NotFoundError(resource_type="blackout_date", resource_id=str(blackout_date_id))
        await self.db.delete(blackout)
        await self.db.commit()
        logger.info("Blackout date deleted", extra={"blackout_date_id": str(blackout_date_id)})

    async def list_blackout_dates(
        self,
        tour_id: UUID,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> List[BlackoutDate]:
        stmt = select(BlackoutDate).where(
            BlackoutDate.organization_id == self.organization_id,
            BlackoutDate.tour_id == tour_id,
        )
        if start:
            stmt = stmt.where(BlackoutDate.date >= start)
        if end:
            stmt = stmt.where(BlackoutDate.date <= end)
        result = await self.db.execute(stmt.order_by(BlackoutDate.date))
        return list(result.scalars())

    async def get_tour_availability_config(
        self,
        tour_id: UUID,
        blackout_from: Optional[date] = None,
        blackout_to: Optional[date] = None,
    ) -> TourAvailabilityConfig:
        """Everything that decides when a tour operates."""
        tour = await self.get_tour_by_id_or_raise(tour_id)
        return TourAvailabilityConfig(
            tour_id=tour.id,
            windows=await self.list_availability_windows(tour.id),
            departure_times=await self.list_departure_times(tour.id),
            blackout_dates=await self.list_blackout_dates(tour.id, blackout_from, blackout_to),
        )
