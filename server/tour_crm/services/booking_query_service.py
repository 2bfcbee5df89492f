"""Read side of bookings: hydrated lookups and listings."""

import logging
from datetime import date, datetime, timezone
from typing import Callable, List, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..core.dependencies import ServiceContext
from ..core.exceptions import NotFoundError
from ..models.booking import Booking, BookingStatus
from ..models.schedule import Schedule
from ..schemas.booking import ListBookingsRequest
from .urgency import as_utc

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def booking_relations():
    """Loader options that hydrate every relation a booking response shows."""
    return (
        selectinload(Booking.customer),
        selectinload(Booking.tour),
        selectinload(Booking.schedule),
        selectinload(Booking.participants),
    )


class BookingQueryService:
    """Organization-scoped booking reads with relations loaded eagerly."""

    def __init__(
        self,
        db: AsyncSession,
        ctx: ServiceContext,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.db = db
        self.organization_id = ctx.organization_id
        self._clock = clock or _utcnow

    def _scoped(self):
        return (
            select(Booking)
            .options(*booking_relations())
            .where(Booking.organization_id == self.organization_id)
            # Refresh anything already in the identity map
            .execution_options(populate_existing=True)
        )

    async def get_booking_by_id(self, booking_id: UUID) -> Optional[Booking]:
        result = await self.db.execute(self._scoped().where(Booking.id == booking_id))
        return result.scalar_one_or_none()

    async def get_booking_by_id_or_raise(self, booking_id: UUID) -> Booking:
        """
        Get a hydrated booking or raise NotFoundError.

        Raises:
            NotFoundError: If the booking is missing or belongs to another organization
        """
        booking = await self.get_booking_by_id(booking_id)
        if not booking:
            logger.warning(
                "Booking not found",
                extra={"booking_id": str(booking_id), "organization_id": str(self.organization_id)}
            )
            raise NotFoundError(resource_type="booking", resource_id=str(booking_id))
        return booking

    async def get_bookings_by_ids(self, booking_ids: Sequence[UUID]) -> List[Booking]:
        if not booking_ids:
            return []
        result = await self.db.execute(self._scoped().where(Booking.id.in_(list(booking_ids))))
        return list(result.scalars())

    async def list_bookings(self, request: ListBookingsRequest) -> Tuple[List[Booking], Optional[str]]:
        """
        List bookings matching the filters, ordered by ID for stable paging.

        Returns:
            The page of bookings and the cursor of the next page, if any
        """
        stmt = self._scoped()

        if request.status:
            stmt = stmt.where(Booking.status == request.status.value)
        if request.payment_status:
            stmt = stmt.where(Booking.payment_status == request.payment_status.value)
        if request.source:
            stmt = stmt.where(Booking.source == request.source.value)
        if request.tour_id:
            stmt = stmt.where(Booking.tour_id == request.tour_id)
        if request.customer_id:
            stmt = stmt.where(Booking.customer_id == request.customer_id)
        if request.schedule_id:
            stmt = stmt.where(Booking.schedule_id == request.schedule_id)
        if request.date_from:
            stmt = stmt.where(Booking.booking_date >= request.date_from)
        if request.date_to:
            stmt = stmt.where(Booking.booking_date <= request.date_to)

        if request.cursor:
            try:
                cursor_id = UUID(request.cursor)
                stmt = stmt.where(Booking.id > cursor_id)
            except (ValueError, TypeError):
                logger.warning(
                    "Invalid cursor provided in booking listing",
                    extra={"cursor": request.cursor}
                )

        # One extra row tells whether another page exists
        stmt = stmt.order_by(Booking.id).limit(request.limit + 1)

        result = await self.db.execute(stmt)
        bookings = list(result.scalars())

        has_next_page = len(bookings) > request.limit
        if has_next_page:
            bookings = bookings[:request.limit]

        next_cursor = None
        if has_next_page and bookings:
            next_cursor = str(bookings[-1].id)

        logger.info(
            "Booking listing completed",
            extra={
                "organization_id": str(self.organization_id),
                "results_count": len(bookings),
                "has_next_page": has_next_page,
            }
        )
        return bookings, next_cursor

    async def get_bookings_between(
        self,
        start: date,
        end: date,
        statuses: Sequence[str] = (BookingStatus.PENDING.value, BookingStatus.CONFIRMED.value),
    ) -> List[Booking]:
        """
        Bookings whose tour falls between ``start`` and ``end`` inclusive.

        Schedule bookings are matched on the schedule start as well as on the
        dual-written booking date.
        """
        range_start = datetime.combine(start, datetime.min.time(), tzinfo=timezone.utc)
        range_end = datetime.combine(end, datetime.max.time(), tzinfo=timezone.utc)
        stmt = (
            self._scoped()
            .outerjoin(Schedule, Schedule.id == Booking.schedule_id)
            .where(
                Booking.status.in_(list(statuses)),
                (
                    (Booking.booking_date >= start) & (Booking.booking_date <= end)
                ) | (
                    (Schedule.starts_at >= range_start) & (Schedule.starts_at <= range_end)
                ),
            )
            .order_by(Booking.booking_date, Booking.booking_time, Booking.created_at)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().unique())

    async def get_todays_bookings(self) -> List[Booking]:
        """Pending and confirmed bookings whose tour runs today (UTC)."""
        today = as_utc(self._clock()).date()
        return await self.get_bookings_between(today, today)
