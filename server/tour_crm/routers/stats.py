"""Booking dashboard statistics router."""

import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.dependencies import DatabaseSession, OrganizationScope, ServiceContext
from ..schemas.stats import (
    BookingStats,
    BookingStatsRequest,
    NeedsAction,
    TodayBookings,
    UpcomingBookings,
    UpcomingRequest,
    UrgencyGroups,
)
from ..services.booking_stats_service import BookingStatsService
from .common import PROBLEM_RESPONSES, execute_operation

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/booking/stats", tags=["stats"], responses=PROBLEM_RESPONSES)


@router.post("/summary", response_model=BookingStats)
async def booking_summary(
    request: BookingStatsRequest,
    db: AsyncSession = DatabaseSession,
    ctx: ServiceContext = OrganizationScope,
) -> JSONResponse:
    """Counts per status with revenue and participant totals."""
    service = BookingStatsService(db, ctx)

    async def operation():
        stats = await service.get_stats(request.date_from, request.date_to)
        return BookingStats.model_validate(stats)

    return await execute_operation("booking stats", operation)


@router.post("/urgency", response_model=UrgencyGroups)
async def bookings_by_urgency(
    db: AsyncSession = DatabaseSession,
    ctx: ServiceContext = OrganizationScope,
) -> JSONResponse:
    """Upcoming bookings with open issues, bucketed by urgency tier."""
    service = BookingStatsService(db, ctx)

    async def operation():
        return UrgencyGroups.model_validate(await service.get_grouped_by_urgency())

    return await execute_operation("urgency grouping", operation)


@router.post("/needs-action", response_model=NeedsAction)
async def needs_action(
    db: AsyncSession = DatabaseSession,
    ctx: ServiceContext = OrganizationScope,
) -> JSONResponse:
    """Upcoming bookings waiting on a confirmation or a payment."""
    service = BookingStatsService(db, ctx)

    async def operation():
        return NeedsAction.model_validate(await service.get_needs_action())

    return await execute_operation("needs-action listing", operation)


@router.post("/upcoming", response_model=UpcomingBookings)
async def upcoming_bookings(
    request: UpcomingRequest,
    db: AsyncSession = DatabaseSession,
    ctx: ServiceContext = OrganizationScope,
) -> JSONResponse:
    """Bookings of the coming days grouped per day."""
    service = BookingStatsService(db, ctx)

    async def operation():
        return UpcomingBookings.model_validate(await service.get_upcoming(request.days))

    return await execute_operation("upcoming bookings", operation, days=request.days)


@router.post("/today", response_model=TodayBookings)
async def todays_bookings(
    db: AsyncSession = DatabaseSession,
    ctx: ServiceContext = OrganizationScope,
) -> JSONResponse:
    """Today's bookings with urgency and a countdown."""
    service = BookingStatsService(db, ctx)

    async def operation():
        return TodayBookings.model_validate(await service.get_today_with_urgency())

    return await execute_operation("today's bookings", operation)
