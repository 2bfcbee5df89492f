"""Bulk booking operations router."""

import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.dependencies import DatabaseSession, OrganizationScope, ServiceContext
from ..schemas.bulk import (
    BulkBookingIdsRequest,
    BulkCancelRequest,
    BulkPaymentStatusRequest,
    BulkRescheduleRequest,
    BulkResult,
)
from ..services.booking_bulk_service import BookingBulkService
from .common import PROBLEM_RESPONSES, execute_operation, guide_recalculator_for

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/booking/bulk", tags=["booking"], responses=PROBLEM_RESPONSES)


def _bulk_service(db: AsyncSession, ctx: ServiceContext) -> BookingBulkService:
    return BookingBulkService(db, ctx, guide_recalculator=guide_recalculator_for(db, ctx))


@router.post("/confirm", response_model=BulkResult)
async def bulk_confirm(
    request: BulkBookingIdsRequest,
    db: AsyncSession = DatabaseSession,
    ctx: ServiceContext = OrganizationScope,
) -> JSONResponse:
    """Confirm every pending booking in the list."""
    service = _bulk_service(db, ctx)

    async def operation():
        result = await service.bulk_confirm(request.booking_ids)
        return BulkResult.model_validate(result, from_attributes=True)

    return await execute_operation("bulk confirmation", operation, items=len(request.booking_ids))


@router.post("/cancel", response_model=BulkResult)
async def bulk_cancel(
    request: BulkCancelRequest,
    db: AsyncSession = DatabaseSession,
    ctx: ServiceContext = OrganizationScope,
) -> JSONResponse:
    """Cancel the listed bookings and release their capacity."""
    service = _bulk_service(db, ctx)

    async def operation():
        result = await service.bulk_cancel(request.booking_ids, reason=request.reason)
        return BulkResult.model_validate(result, from_attributes=True)

    return await execute_operation("bulk cancellation", operation, items=len(request.booking_ids))


@router.post("/payment-status", response_model=BulkResult)
async def bulk_payment_status(
    request: BulkPaymentStatusRequest,
    db: AsyncSession = DatabaseSession,
    ctx: ServiceContext = OrganizationScope,
) -> JSONResponse:
    """Set one payment status on the listed bookings."""
    service = _bulk_service(db, ctx)

    async def operation():
        result = await service.bulk_update_payment_status(request.booking_ids, request.payment_status)
        return BulkResult.model_validate(result, from_attributes=True)

    return await execute_operation("bulk payment status update", operation, items=len(request.booking_ids))


@router.post("/reschedule", response_model=BulkResult)
async def bulk_reschedule(
    request: BulkRescheduleRequest,
    db: AsyncSession = DatabaseSession,
    ctx: ServiceContext = OrganizationScope,
) -> JSONResponse:
    """Move the listed bookings to one destination; each item succeeds or fails on its own."""
    service = _bulk_service(db, ctx)

    async def operation():
        result = await service.bulk_reschedule(request.booking_ids, request)
        return BulkResult.model_validate(result, from_attributes=True)

    return await execute_operation("bulk reschedule", operation, items=len(request.booking_ids))
