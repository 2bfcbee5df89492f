"""Booking router for booking operations."""

import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.dependencies import DatabaseSession, OrganizationScope, ServiceContext
from ..schemas.booking import (
    Booking,
    BookingIdRequest,
    CancelBookingRequest,
    CreateBookingRequest,
    ListBookingsRequest,
    ListBookingsResponse,
    RescheduleBookingRequest,
    UpdateBookingRequest,
    UpdatePaymentStatusRequest,
)
from ..services.booking_command_service import BookingCommandService
from ..services.booking_query_service import BookingQueryService
from .common import PROBLEM_RESPONSES, execute_operation, guide_recalculator_for

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/booking", tags=["booking"], responses=PROBLEM_RESPONSES)


def _command_service(db: AsyncSession, ctx: ServiceContext) -> BookingCommandService:
    return BookingCommandService(db, ctx, guide_recalculator=guide_recalculator_for(db, ctx))


@router.post("/create", response_model=Booking)
async def create_booking(
    request: CreateBookingRequest,
    db: AsyncSession = DatabaseSession,
    ctx: ServiceContext = OrganizationScope,
) -> JSONResponse:
    """
    Create a booking.

    Address the slot with ``schedule_id``, or with ``tour_id``,
    ``booking_date`` and ``booking_time``.
    """
    service = _command_service(db, ctx)

    async def operation():
        booking = await service.create_booking(request)
        logger.info(
            "Booking created successfully",
            extra={
                "booking_id": str(booking.id),
                "reference_number": booking.reference_number,
                "total_participants": booking.total_participants,
            }
        )
        return Booking.model_validate(booking)

    return await execute_operation("booking creation", operation, customer_id=str(request.customer_id))


@router.post("/get", response_model=Booking)
async def get_booking(
    request: BookingIdRequest,
    db: AsyncSession = DatabaseSession,
    ctx: ServiceContext = OrganizationScope,
) -> JSONResponse:
    """Get a booking with its customer, tour, schedule and participants."""
    service = BookingQueryService(db, ctx)

    async def operation():
        booking = await service.get_booking_by_id_or_raise(request.booking_id)
        return Booking.model_validate(booking)

    return await execute_operation("booking retrieval", operation, booking_id=str(request.booking_id))


@router.post("/list", response_model=ListBookingsResponse)
async def list_bookings(
    request: ListBookingsRequest,
    db: AsyncSession = DatabaseSession,
    ctx: ServiceContext = OrganizationScope,
) -> JSONResponse:
    """List bookings with filters and cursor-based pagination."""
    service = BookingQueryService(db, ctx)

    async def operation():
        bookings, next_cursor = await service.list_bookings(request)
        return ListBookingsResponse(
            items=[Booking.model_validate(b) for b in bookings],
            next_cursor=next_cursor,
        )

    return await execute_operation("booking listing", operation, cursor=request.cursor)


@router.post("/update", response_model=Booking)
async def update_booking(
    request: UpdateBookingRequest,
    db: AsyncSession = DatabaseSession,
    ctx: ServiceContext = OrganizationScope,
) -> JSONResponse:
    """Update guest counts, pricing adjustments or notes."""
    service = _command_service(db, ctx)

    async def operation():
        return Booking.model_validate(await service.update_booking(request))

    return await execute_operation("booking update", operation, booking_id=str(request.booking_id))


@router.post("/confirm", response_model=Booking)
async def confirm_booking(
    request: BookingIdRequest,
    db: AsyncSession = DatabaseSession,
    ctx: ServiceContext = OrganizationScope,
) -> JSONResponse:
    """Confirm a pending booking."""
    service = _command_service(db, ctx)

    async def operation():
        return Booking.model_validate(await service.confirm_booking(request.booking_id))

    return await execute_operation("booking confirmation", operation, booking_id=str(request.booking_id))


@router.post("/cancel", response_model=Booking)
async def cancel_booking(
    request: CancelBookingRequest,
    db: AsyncSession = DatabaseSession,
    ctx: ServiceContext = OrganizationScope,
) -> JSONResponse:
    """Cancel a booking and release its capacity."""
    service = _command_service(db, ctx)

    async def operation():
        booking = await service.cancel_booking(request.booking_id, reason=request.reason)
        return Booking.model_validate(booking)

    return await execute_operation("booking cancellation", operation, booking_id=str(request.booking_id))


@router.post("/no-show", response_model=Booking)
async def mark_no_show(
    request: BookingIdRequest,
    db: AsyncSession = DatabaseSession,
    ctx: ServiceContext = OrganizationScope,
) -> JSONResponse:
    """Mark a confirmed booking as a no-show."""
    service = _command_service(db, ctx)

    async def operation():
        return Booking.model_validate(await service.mark_no_show(request.booking_id))

    return await execute_operation("no-show marking", operation, booking_id=str(request.booking_id))


@router.post("/complete", response_model=Booking)
async def complete_booking(
    request: BookingIdRequest,
    db: AsyncSession = DatabaseSession,
    ctx: ServiceContext = OrganizationScope,
) -> JSONResponse:
    """Mark a confirmed booking as completed."""
    service = _command_service(db, ctx)

    async def operation():
        return Booking.model_validate(await service.complete_booking(request.booking_id))

    return await execute_operation("booking completion", operation, booking_id=str(request.booking_id))


@router.post("/reschedule", response_model=Booking)
async def reschedule_booking(
    request: RescheduleBookingRequest,
    db: AsyncSession = DatabaseSession,
    ctx: ServiceContext = OrganizationScope,
) -> JSONResponse:
    """Move a booking to another schedule, or to another date and time."""
    service = _command_service(db, ctx)

    async def operation():
        booking = await service.reschedule_booking(request.booking_id, request)
        return Booking.model_validate(booking)

    return await execute_operation("booking reschedule", operation, booking_id=str(request.booking_id))


@router.post("/payment-status", response_model=Booking)
async def update_payment_status(
    request: UpdatePaymentStatusRequest,
    db: AsyncSession = DatabaseSession,
    ctx: ServiceContext = OrganizationScope,
) -> JSONResponse:
    """Record a payment status change."""
    service = _command_service(db, ctx)

    async def operation():
        return Booking.model_validate(await service.update_payment_status(request))

    return await execute_operation("payment status update", operation, booking_id=str(request.booking_id))
