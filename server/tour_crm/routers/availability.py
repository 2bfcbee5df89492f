"""Availability router: slot checks, calendars and availability configuration."""

import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.dependencies import DatabaseSession, OrganizationScope, ServiceContext
from ..schemas.availability import (
    AvailabilityWindowResponse,
    BlackoutDateResponse,
    CapacityHeatmapEntry,
    CheckSlotRequest,
    CreateAvailabilityWindowRequest,
    CreateBlackoutDateRequest,
    CreateDepartureTimeRequest,
    DeleteBlackoutDateRequest,
    DeleteDepartureTimeRequest,
    DeleteResponse,
    DeleteWindowRequest,
    DepartureTimeResponse,
    HeatmapRequest,
    HeatmapResponse,
    MonthAvailability,
    MonthAvailabilityRequest,
    SlotAvailability,
    TourAvailabilityConfig,
    TourAvailabilityConfigRequest,
    UpdateAvailabilityWindowRequest,
    UpdateDepartureTimeRequest,
)
from ..services.availability_service import TourAvailabilityService, unavailable_message, validate_time_format
from .common import PROBLEM_RESPONSES, execute_operation

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/availability", tags=["availability"], responses=PROBLEM_RESPONSES)


@router.post("/check-slot", response_model=SlotAvailability)
async def check_slot(
    request: CheckSlotRequest,
    db: AsyncSession = DatabaseSession,
    ctx: ServiceContext = OrganizationScope,
) -> JSONResponse:
    """
    Check whether a party fits into one tour slot.

    Unavailable slots carry a reason code and the message to show for it.
    """
    service = TourAvailabilityService(db, ctx)

    async def operation():
        validate_time_format(request.time)
        result = await service.check_slot_availability(
            request.tour_id,
            request.date,
            request.time,
            request.requested_spots,
            exclude_booking_id=request.exclude_booking_id,
        )
        return SlotAvailability(
            available=result.available,
            spots_remaining=result.spots_remaining,
            max_capacity=result.max_capacity,
            booked_count=result.booked_count,
            reason=result.reason,
            message=None if result.available else unavailable_message(result),
        )

    return await execute_operation("slot check", operation, tour_id=str(request.tour_id))


@router.post("/month", response_model=MonthAvailability)
async def month_availability(
    request: MonthAvailabilityRequest,
    db: AsyncSession = DatabaseSession,
    ctx: ServiceContext = OrganizationScope,
) -> JSONResponse:
    """Bookable days of a month with per-departure capacity."""
    service = TourAvailabilityService(db, ctx)

    async def operation():
        month = await service.get_available_dates_for_month(request.tour_id, request.year, request.month)
        return MonthAvailability.model_validate(month)

    return await execute_operation("month availability", operation, tour_id=str(request.tour_id))


@router.post("/heatmap", response_model=HeatmapResponse)
async def capacity_heatmap(
    request: HeatmapRequest,
    db: AsyncSession = DatabaseSession,
    ctx: ServiceContext = OrganizationScope,
) -> JSONResponse:
    """Utilization of every operating slot across tours in a date range."""
    service = TourAvailabilityService(db, ctx)

    async def operation():
        entries = await service.get_capacity_heatmap(request.start_date, request.end_date, request.tour_ids)
        return HeatmapResponse(entries=[CapacityHeatmapEntry.model_validate(e) for e in entries])

    return await execute_operation(
        "capacity heatmap",
        operation,
        start_date=request.start_date.isoformat(),
        end_date=request.end_date.isoformat(),
    )


@router.post("/config", response_model=TourAvailabilityConfig)
async def availability_config(
    request: TourAvailabilityConfigRequest,
    db: AsyncSession = DatabaseSession,
    ctx: ServiceContext = OrganizationScope,
) -> JSONResponse:
    """Windows, departure times and blackout dates of a tour."""
    service = TourAvailabilityService(db, ctx)

    async def operation():
        config = await service.get_tour_availability_config(
            request.tour_id, request.blackout_from, request.blackout_to
        )
        return TourAvailabilityConfig.model_validate(config)

    return await execute_operation("availability config", operation, tour_id=str(request.tour_id))


@router.post("/window/create", response_model=AvailabilityWindowResponse)
async def create_window(
    request: CreateAvailabilityWindowRequest,
    db: AsyncSession = DatabaseSession,
    ctx: ServiceContext = OrganizationScope,
) -> JSONResponse:
    service = TourAvailabilityService(db, ctx)

    async def operation():
        window = await service.create_availability_window(request)
        return AvailabilityWindowResponse.model_validate(window)

    return await execute_operation("window creation", operation, tour_id=str(request.tour_id))


@router.post("/window/update", response_model=AvailabilityWindowResponse)
async def update_window(
    request: UpdateAvailabilityWindowRequest,
    db: AsyncSession = DatabaseSession,
    ctx: ServiceContext = OrganizationScope,
) -> JSONResponse:
    service = TourAvailabilityService(db, ctx)

    async def operation():
        window = await service.update_availability_window(request.window_id, request)
        return AvailabilityWindowResponse.model_validate(window)

    return await execute_operation("window update", operation, window_id=str(request.window_id))


@router.post("/window/delete", response_model=DeleteResponse)
async def delete_window(
    request: DeleteWindowRequest,
    db: AsyncSession = DatabaseSession,
    ctx: ServiceContext = OrganizationScope,
) -> JSONResponse:
    service = TourAvailabilityService(db, ctx)

    async def operation():
        await service.delete_availability_window(request.window_id)
        return DeleteResponse(id=request.window_id)

    return await execute_operation("window deletion", operation, window_id=str(request.window_id))


@router.post("/departure-time/create", response_model=DepartureTimeResponse)
async def create_departure_time(
    request: CreateDepartureTimeRequest,
    db: AsyncSession = DatabaseSession,
    ctx: ServiceContext = OrganizationScope,
) -> JSONResponse:
    service = TourAvailabilityService(db, ctx)

    async def operation():
        departure_time = await service.create_departure_time(request)
        return DepartureTimeResponse.model_validate(departure_time)

    return await execute_operation("departure time creation", operation, tour_id=str(request.tour_id))


@router.post("/departure-time/update", response_model=DepartureTimeResponse)
async def update_departure_time(
    request: UpdateDepartureTimeRequest,
    db: AsyncSession = DatabaseSession,
    ctx: ServiceContext = OrganizationScope,
) -> JSONResponse:
    service = TourAvailabilityService(db, ctx)

    async def operation():
        departure_time = await service.update_departure_time(request.departure_time_id, request)
        return DepartureTimeResponse.model_validate(departure_time)

    return await execute_operation(
        "departure time update", operation, departure_time_id=str(request.departure_time_id)
    )


@router.post("/departure-time/delete", response_model=DeleteResponse)
async def delete_departure_time(
    request: DeleteDepartureTimeRequest,
    db: AsyncSession = DatabaseSession,
    ctx: ServiceContext = OrganizationScope,
) -> JSONResponse:
    service = TourAvailabilityService(db, ctx)

    async def operation():
        await service.delete_departure_time(request.departure_time_id)
        return DeleteResponse(id=request.departure_time_id)

    return await execute_operation(
        "departure time deletion", operation, departure_time_id=str(request.departure_time_id)
    )


@router.post("/blackout/create", response_model=BlackoutDateResponse)
async def create_blackout_date(
    request: CreateBlackoutDateRequest,
    db: AsyncSession = DatabaseSession,
    ctx: ServiceContext = OrganizationScope,
) -> JSONResponse:
    service = TourAvailabilityService(db, ctx)

    async def operation():
        blackout = await service.create_blackout_date(request)
        return BlackoutDateResponse.model_validate(blackout)

    return await execute_operation("blackout creation", operation, tour_id=str(request.tour_id))


@router.post("/blackout/delete", response_model=DeleteResponse)
async def delete_blackout_date(
    request: DeleteBlackoutDateRequest,
    db: AsyncSession = DatabaseSession,
    ctx: ServiceContext = OrganizationScope,
) -> JSONResponse:
    service = TourAvailabilityService(db, ctx)

    async def operation():
        await service.delete_blackout_date(request.blackout_date_id)
        return DeleteResponse(id=request.blackout_date_id)

    return await execute_operation(
        "blackout deletion", operation, blackout_date_id=str(request.blackout_date_id)
    )
