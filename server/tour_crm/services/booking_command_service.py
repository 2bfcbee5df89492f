"""Booking service for business logic operations."""

import dataclasses
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Optional, Tuple
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..core.config import settings
from ..core.dependencies import ServiceContext
from ..core.exceptions import InternalServerError, NotFoundError, ValidationError
from ..core.observability import get_logger, metrics_collector
from ..models.booking import Booking, BookingParticipant, BookingStatus, PaymentStatus
from ..models.schedule import Schedule, ScheduleStatus
from ..schemas.booking import (
    CreateBookingRequest,
    RescheduleTarget,
    UpdateBookingRequest,
    UpdatePaymentStatusRequest,
)
from . import booking_state
from .availability_service import TourAvailabilityService, unavailable_message, validate_time_format
from .booking_query_service import BookingQueryService
from .capacity_ledger import (
    CapacityLedger,
    MaterializedCapacity,
    capacity_model_name,
    capacity_model_of,
    resolve_capacity_model,
)
from .customer_service import CustomerService
from .reference import generate_reference_number
from .urgency import as_utc

logger = logging.getLogger(__name__)
audit_logger = get_logger(__name__)

CENTS = Decimal("0.01")
REFERENCE_ATTEMPTS = 10
BOOKING_CHANGED = "Booking was changed by another request. Reload it and try again."
GUEST_COUNT_FIELDS = ("adult_count", "child_count", "infant_count")
# Text fields an update may set or clear
DESCRIPTIVE_FIELDS = (
    "source_details",
    "special_requests",
    "dietary_requirements",
    "accessibility_needs",
    "internal_notes",
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _money(value) -> Decimal:
    return Decimal(str(value)).quantize(CENTS)


def compute_pricing(
    unit_price,
    adult_count: int,
    subtotal=None,
    discount=None,
    tax=None,
    total=None,
) -> Tuple[Decimal, Decimal, Decimal, Decimal]:
    """
    Price a booking: adults pay ``unit_price`` each, children and infants ride free.

    Any amount the caller supplies is kept as is.

    Returns:
        subtotal, discount, tax and total
    """
    subtotal = _money(unit_price) * adult_count if subtotal is None else _money(subtotal)
    discount = _money(discount or 0)
    tax = _money(tax or 0)
    total = subtotal - discount + tax if total is None else _money(total)
    return _money(subtotal), discount, tax, _money(total)


def slot_of(schedule: Schedule) -> Tuple:
    """Date and HH:MM time of a schedule start, for dual-writing slot fields."""
    starts_at = as_utc(schedule.starts_at)
    return starts_at.date(), starts_at.strftime("%H:%M")


async def claim_booking(db: AsyncSession, booking: Booking, **values) -> bool:
    """
    Write ``values`` to a booking row that still looks the way it was read.

    The row must keep the status, guest count and schedule seen on ``booking``.
    The write holds the row until the transaction ends, so a second command
    racing on the same booking waits and then finds the row changed.

    Returns:
        False when a concurrent command changed the booking first
    """
    if booking.schedule_id is None:
        same_schedule = Booking.schedule_id.is_(None)
    else:
        same_schedule = Booking.schedule_id == booking.schedule_id

    stmt = (
        update(Booking)
        .where(
            Booking.id == booking.id,
            Booking.organization_id == booking.organization_id,
            Booking.status == booking.status,
            Booking.total_participants == booking.total_participants,
            same_schedule,
        )
        .values(updated_at=func.now(), **values)
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    return result.rowcount == 1


async def raise_booking_changed(db: AsyncSession, booking_id: UUID, operation: Optional[str] = None) -> None:
    """
    Reject a command whose booking changed after it was read.

    When the booking's current status rules ``operation`` out, the usual
    transition error is raised; otherwise a generic conflict.

    Raises:
        ValidationError: always
    """
    result = await db.execute(select(Booking.status).where(Booking.id == booking_id))
    if operation is not None:
        booking_state.ensure_transition(operation, result.scalar_one())
    raise ValidationError(BOOKING_CHANGED)


class BookingCommandService:
    """
    Booking mutations.

    Each command runs in one transaction on ``db``: the capacity reservation
    or release commits or rolls back together with the booking row.
    """

    def __init__(
        self,
        db: AsyncSession,
        ctx: ServiceContext,
        guide_recalculator=None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.db = db
        self.ctx = ctx
        self.organization_id = ctx.organization_id
        self.guide_recalculator = guide_recalculator
        self._clock = clock or _utcnow
        self.availability = TourAvailabilityService(db, ctx, clock=self._clock)
        self.ledger = CapacityLedger(db, ctx)
        self.customers = CustomerService(db, ctx)
        self.queries = BookingQueryService(db, ctx, clock=self._clock)
        self.audit = audit_logger.with_context(
            organization_id=str(ctx.organization_id),
            user_id=ctx.user_id,
        )

    def _now(self) -> datetime:
        return as_utc(self._clock())

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def get_schedule_by_id_or_raise(self, schedule_id: UUID) -> Schedule:
        stmt = (
            select(Schedule)
            .options(selectinload(Schedule.tour))
            .where(
                Schedule.id == schedule_id,
                Schedule.organization_id == self.organization_id,
            )
        )
        result = await self.db.execute(stmt)
        schedule = result.scalar_one_or_none()
        if not schedule:
            logger.warning(
                "Schedule not found",
                extra={"schedule_id": str(schedule_id), "organization_id": str(self.organization_id)}
            )
            raise NotFoundError(resource_type="schedule", resource_id=str(schedule_id))
        return schedule

    async def _generate_unique_reference(self) -> str:
        for _ in range(REFERENCE_ATTEMPTS):
            reference = generate_reference_number(settings.reference_prefix)
            stmt = select(Booking.id).where(
                Booking.organization_id == self.organization_id,
                Booking.reference_number == reference,
            )
            result = await self.db.execute(stmt)
            if result.first() is None:
                return reference
        raise InternalServerError("Could not generate a unique booking reference")

    async def _reload(self, booking_id: UUID) -> Booking:
        # Guarded updates bypass the identity map
        self.db.expire_all()
        return await self.queries.get_booking_by_id_or_raise(booking_id)

    async def _commit(self) -> None:
        try:
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

    def _request_guide_recalculation(self, *schedule_ids: Optional[UUID]) -> None:
        if self.guide_recalculator is None:
            return
        for schedule_id in dict.fromkeys(s for s in schedule_ids if s is not None):
            self.guide_recalculator.request_recalculation(schedule_id)

    async def _unit_price(self, booking: Booking):
        if booking.schedule_id is not None and booking.schedule is not None:
            if booking.schedule.price is not None:
                return booking.schedule.price
            return booking.tour.base_price
        if booking.booking_date is None:
            return booking.tour.base_price
        return await self.availability.get_slot_unit_price(booking.tour, booking.booking_date)

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    async def create_booking(self, request: CreateBookingRequest) -> Booking:
        """
        Create a booking and reserve its capacity.

        The slot is either a materialized schedule or a tour, date and time.

        Returns:
            The created booking with customer, tour, schedule and participants

        Raises:
            NotFoundError: If the customer, tour or schedule is not in the organization
            ValidationError: If the slot cannot take the guests
            CapacityExceededError: If a concurrent booking took the last spots of a schedule
        """
        await self.customers.get_customer_by_id_or_raise(request.customer_id)
        model = resolve_capacity_model(
            schedule_id=request.schedule_id,
            tour_id=request.tour_id,
            booking_date=request.booking_date,
            booking_time=request.booking_time,
        )
        total_participants = request.adult_count + request.child_count + request.infant_count

        if isinstance(model, MaterializedCapacity):
            schedule = await self.get_schedule_by_id_or_raise(model.schedule_id)
            if schedule.status == ScheduleStatus.CANCELLED:
                raise ValidationError("Cannot book a cancelled schedule")
            tour = schedule.tour
            schedule_id = schedule.id
            booking_date, booking_time = slot_of(schedule)
            unit_price = schedule.price if schedule.price is not None else tour.base_price
            currency = schedule.currency
        else:
            validate_time_format(model.booking_time)
            tour = await self.availability.get_tour_by_id_or_raise(model.tour_id)
            slot = await self.availability.check_slot_availability(
                tour.id,
                model.booking_date,
                model.booking_time,
                total_participants,
            )
            if not slot.available:
                logger.warning(
                    "Booking creation failed - slot unavailable",
                    extra={
                        "tour_id": str(tour.id),
                        "booking_date": model.booking_date.isoformat(),
                        "booking_time": model.booking_time,
                        "requested": total_participants,
                        "reason": slot.reason,
                    }
                )
                raise ValidationError(unavailable_message(slot))
            schedule_id = None
            booking_date, booking_time = model.booking_date, model.booking_time
            unit_price = await self.availability.get_slot_unit_price(tour, booking_date)
            currency = tour.currency

        subtotal, discount, tax, total = compute_pricing(
            unit_price,
            request.adult_count,
            subtotal=request.subtotal,
            discount=request.discount,
            tax=request.tax,
            total=request.total,
        )
        reference_number = await self._generate_unique_reference()

        booking = Booking(
            organization_id=self.organization_id,
            reference_number=reference_number,
            customer_id=request.customer_id,
            tour_id=tour.id,
            schedule_id=schedule_id,
            booking_date=booking_date,
            booking_time=booking_time,
            adult_count=request.adult_count,
            child_count=request.child_count,
            infant_count=request.infant_count,
            guest_adults=request.adult_count,
            guest_children=request.child_count,
            guest_infants=request.infant_count,
            total_participants=total_participants,
            subtotal=subtotal,
            discount=discount,
            tax=tax,
            total=total,
            currency=request.currency or currency,
            status=BookingStatus.PENDING.value,
            payment_status=PaymentStatus.PENDING.value,
            source=request.source.value,
            source_details=request.source_details,
            special_requests=request.special_requests,
            dietary_requirements=request.dietary_requirements,
            accessibility_needs=request.accessibility_needs,
            internal_notes=request.internal_notes,
        )
        booking.participants = [
            BookingParticipant(organization_id=self.organization_id, **participant.model_dump(mode="json"))
            for participant in request.participants
        ]

        try:
            await self.ledger.reserve_for(model, total_participants)
            self.db.add(booking)
            await self.db.flush()
            if booking.id is None:
                raise InternalServerError("Booking insert returned no row")
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        booking_id = booking.id
        metrics_collector.record_booking_created(capacity_model_name(model), request.source.value)
        self.audit.info(
            "booking_created",
            booking_id=str(booking_id),
            reference_number=reference_number,
            capacity_model=capacity_model_name(model),
            tour_id=str(tour.id),
            schedule_id=str(schedule_id) if schedule_id else None,
            booking_date=booking_date.isoformat(),
            booking_time=booking_time,
            total_participants=total_participants,
            total=str(total),
        )
        self._request_guide_recalculation(schedule_id)

        return await self._reload(booking_id)

    async def _apply_guest_counts(self, booking: Booking, counts: dict) -> int:
        """Move capacity for new guest counts and reprice; returns the participant delta."""
        if booking.status in (BookingStatus.CANCELLED.value, BookingStatus.COMPLETED.value):
            raise ValidationError(f"Cannot change guests on a {booking.status} booking")

        new_total = sum(counts.values())
        if new_total <= 0:
            raise ValidationError("At least one guest is required")

        old_total = booking.total_participants
        delta = new_total - old_total
        model = capacity_model_of(booking)

        if delta > 0 and isinstance(model, MaterializedCapacity):
            await self.ledger.reserve(model.schedule_id, delta)
        elif delta > 0:
            slot = await self.availability.check_slot_availability(
                booking.tour_id,
                booking.booking_date,
                booking.booking_time,
                new_total,
                exclude_booking_id=booking.id,
            )
            if not slot.available:
                # Report what this booking may add on top of its current guests
                extra = dataclasses.replace(
                    slot, spots_remaining=max(0, slot.spots_remaining - old_total)
                )
                raise ValidationError(unavailable_message(extra, action="update"))
        elif delta < 0:
            await self.ledger.release_for(model, -delta)

        booking.adult_count = counts["adult_count"]
        booking.child_count = counts["child_count"]
        booking.infant_count = counts["infant_count"]
        booking.guest_adults = counts["adult_count"]
        booking.guest_children = counts["child_count"]
        booking.guest_infants = counts["infant_count"]
        booking.total_participants = new_total

        unit_price = await self._unit_price(booking)
        booking.subtotal = _money(unit_price) * booking.adult_count
        return delta

    # ------------------------------------------------------------------
    # Update
    # ------------------------------------------------------------------

    async def update_booking(self, request: UpdateBookingRequest) -> Booking:
        """
        Update descriptive fields and guest counts.

        A larger party is re-checked against the booking's own slot; a smaller
        one gives its spots back. The status never changes here.

        Raises:
            ValidationError: If the extra guests do not fit or the booking is closed
        """
        booking = await self.queries.get_booking_by_id_or_raise(request.booking_id)
        changes = request.model_dump(exclude_unset=True, exclude={"booking_id"})

        before = {
            "adult_count": booking.adult_count,
            "child_count": booking.child_count,
            "infant_count": booking.infant_count,
            "total_participants": booking.total_participants,
            "total": str(booking.total),
        }

        counts = {
            name: changes[name] if changes.get(name) is not None else getattr(booking, name)
            for name in GUEST_COUNT_FIELDS
        }
        counts_changed = any(counts[name] != getattr(booking, name) for name in GUEST_COUNT_FIELDS)
        delta = 0

        try:
            await self._claim(booking)
            if counts_changed:
                delta = await self._apply_guest_counts(booking, counts)

            if changes.get("discount") is not None:
                booking.discount = _money(changes["discount"])
            if changes.get("tax") is not None:
                booking.tax = _money(changes["tax"])
            if counts_changed or "discount" in changes or "tax" in changes:
                booking.total = _money(booking.subtotal - booking.discount + booking.tax)

            for name in DESCRIPTIVE_FIELDS:
                if name in changes:
                    setattr(booking, name, changes[name])

            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        self.audit.info(
            "booking_updated",
            booking_id=str(booking.id),
            before=before,
            after={
                "adult_count": counts["adult_count"],
                "child_count": counts["child_count"],
                "infant_count": counts["infant_count"],
                "total_participants": sum(counts.values()),
                "total": str(booking.total),
            },
            fields=sorted(changes),
        )
        if delta:
            self._request_guide_recalculation(booking.schedule_id)

        return await self._reload(booking.id)

    # ------------------------------------------------------------------
    # Status transitions
    # ------------------------------------------------------------------

    async def _claim(self, booking: Booking, operation: Optional[str] = None, **values) -> None:
        if not await claim_booking(self.db, booking, **values):
            logger.warning(
                "Booking changed by a concurrent request",
                extra={"booking_id": str(booking.id), "operation": operation}
            )
            await raise_booking_changed(self.db, booking.id, operation)

    async def _transition(self, booking_id: UUID, operation: str, **values) -> Tuple[Booking, str, str]:
        """
        Move a booking along the state machine with a guarded write.

        Returns:
            The booking as read, its previous status and its new status
        """
        booking = await self.queries.get_booking_by_id_or_raise(booking_id)
        previous_status = booking.status
        booking_state.ensure_transition(operation, previous_status)
        status = booking_state.TARGET_STATUS[operation].value
        try:
            await self._claim(booking, operation, status=status, **values)
        except Exception:
            await self.db.rollback()
            raise
        return booking, previous_status, status

    async def confirm_booking(self, booking_id: UUID) -> Booking:
        """Move a pending booking to confirmed."""
        _, previous_status, status = await self._transition(
            booking_id, booking_state.CONFIRM, confirmed_at=self._now()
        )
        await self._commit()

        self.audit.info(
            "booking_confirmed",
            booking_id=str(booking_id),
            before={"status": previous_status},
            after={"status": status},
        )
        return await self._reload(booking_id)

    async def cancel_booking(self, booking_id: UUID, reason: Optional[str] = None) -> Booking:
        """
        Cancel a booking and give its spots back.

        Only the request whose guarded write flips the status releases the
        spots, so racing cancels of one booking release them once.

        Raises:
            ValidationError: If the booking is already cancelled or completed
        """
        booking, previous_status, status = await self._transition(
            booking_id,
            booking_state.CANCEL,
            cancelled_at=self._now(),
            cancellation_reason=reason,
        )

        try:
            if booking.schedule_id is not None:
                await self.ledger.release(booking.schedule_id, booking.total_participants)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        metrics_collector.record_booking_cancelled()
        self.audit.info(
            "booking_cancelled",
            booking_id=str(booking_id),
            before={"status": previous_status},
            after={"status": status},
            reason=reason,
            released=booking.total_participants,
            schedule_id=str(booking.schedule_id) if booking.schedule_id else None,
        )
        self._request_guide_recalculation(booking.schedule_id)
        return await self._reload(booking_id)

    async def mark_no_show(self, booking_id: UUID) -> Booking:
        """Mark a confirmed booking whose guests never turned up."""
        _, previous_status, status = await self._transition(booking_id, booking_state.MARK_NO_SHOW)
        await self._commit()

        self.audit.info(
            "booking_marked_no_show",
            booking_id=str(booking_id),
            before={"status": previous_status},
            after={"status": status},
        )
        return await self._reload(booking_id)

    async def complete_booking(self, booking_id: UUID) -> Booking:
        _, previous_status, status = await self._transition(booking_id, booking_state.COMPLETE)
        await self._commit()

        self.audit.info(
            "booking_completed",
            booking_id=str(booking_id),
            before={"status": previous_status},
            after={"status": status},
        )
        return await self._reload(booking_id)

    # ------------------------------------------------------------------
    # Reschedule
    # ------------------------------------------------------------------

    async def reschedule_booking(self, booking_id: UUID, target: RescheduleTarget) -> Booking:
        """
        Move a booking to another schedule or slot.

        Availability is re-checked at the destination without counting the
        booking itself. Releasing the old schedule, reserving the new one and
        updating the booking commit together.

        Raises:
            ValidationError: If the booking is closed or the destination cannot take it
            CapacityExceededError: If the destination schedule filled up concurrently
        """
        booking = await self.queries.get_booking_by_id_or_raise(booking_id)
        booking_state.ensure_transition(booking_state.RESCHEDULE, booking.status)

        guests = booking.total_participants
        old_schedule_id = booking.schedule_id
        before = {
            "schedule_id": str(old_schedule_id) if old_schedule_id else None,
            "tour_id": str(booking.tour_id),
            "booking_date": booking.booking_date.isoformat() if booking.booking_date else None,
            "booking_time": booking.booking_time,
        }

        try:
            if target.schedule_id is not None:
                schedule = await self.get_schedule_by_id_or_raise(target.schedule_id)
                if old_schedule_id == schedule.id:
                    logger.info(
                        "Reschedule to the current schedule - nothing to do",
                        extra={"booking_id": str(booking_id), "schedule_id": str(schedule.id)}
                    )
                    return booking
                if schedule.status == ScheduleStatus.CANCELLED:
                    raise ValidationError("Cannot reschedule to a cancelled schedule")

                await self._claim(booking, booking_state.RESCHEDULE)
                if old_schedule_id is not None:
                    await self.ledger.release(old_schedule_id, guests)
                await self.ledger.reserve(schedule.id, guests)

                booking.schedule_id = schedule.id
                booking.tour_id = schedule.tour_id
                booking.booking_date, booking.booking_time = slot_of(schedule)
            else:
                validate_time_format(target.booking_time)
                tour_id = target.tour_id or booking.tour_id
                slot = await self.availability.check_slot_availability(
                    tour_id,
                    target.booking_date,
                    target.booking_time,
                    guests,
                    exclude_booking_id=booking.id,
                )
                if not slot.available:
                    raise ValidationError(unavailable_message(slot, action="reschedule"))

                await self._claim(booking, booking_state.RESCHEDULE)
                # Leaving the materialized model for the dynamic one
                if old_schedule_id is not None:
                    await self.ledger.release(old_schedule_id, guests)
                    booking.schedule_id = None

                booking.tour_id = tour_id
                booking.booking_date = target.booking_date
                booking.booking_time = target.booking_time

            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        metrics_collector.record_booking_rescheduled()
        self.audit.info(
            "booking_rescheduled",
            booking_id=str(booking_id),
            before=before,
            after={
                "schedule_id": str(booking.schedule_id) if booking.schedule_id else None,
                "tour_id": str(booking.tour_id),
                "booking_date": booking.booking_date.isoformat() if booking.booking_date else None,
                "booking_time": booking.booking_time,
            },
            total_participants=guests,
        )
        self._request_guide_recalculation(old_schedule_id, booking.schedule_id)
        return await self._reload(booking_id)

    # ------------------------------------------------------------------
    # Payment
    # ------------------------------------------------------------------

    async def update_payment_status(self, request: UpdatePaymentStatusRequest) -> Booking:
        """Record a payment status; a booking marked paid without an amount is paid in full."""
        booking = await self.queries.get_booking_by_id_or_raise(request.booking_id)
        before = {
            "payment_status": booking.payment_status,
            "paid_amount": str(booking.paid_amount) if booking.paid_amount is not None else None,
        }

        booking.payment_status = request.payment_status.value
        if request.paid_amount is not None:
            booking.paid_amount = _money(request.paid_amount)
        elif request.payment_status == PaymentStatus.PAID:
            booking.paid_amount = booking.total
        await self._commit()

        self.audit.info(
            "booking_payment_updated",
            booking_id=str(booking.id),
            before=before,
            after={
                "payment_status": booking.payment_status,
                "paid_amount": str(booking.paid_amount) if booking.paid_amount is not None else None,
            },
        )
        return await self._reload(booking.id)
