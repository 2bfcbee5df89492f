"""Tour router for tour management operations."""

import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.dependencies import DatabaseSession, OrganizationScope, ServiceContext
from ..schemas.tour import CreateTourRequest, GetTourRequest, Tour
from ..services.tour_service import TourService
from .common import PROBLEM_RESPONSES, execute_operation

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/tour", tags=["tour"], responses=PROBLEM_RESPONSES)


@router.post("/create", response_model=Tour)
async def create_tour(
    request: CreateTourRequest,
    db: AsyncSession = DatabaseSession,
    ctx: ServiceContext = OrganizationScope,
) -> JSONResponse:
    """Create a new tour; slugs are unique within the organization."""
    tour_service = TourService(db, ctx)

    async def operation():
        tour = await tour_service.create_tour(request)
        return Tour.model_validate(tour)

    return await execute_operation("tour creation", operation, slug=request.slug)


@router.post("/get", response_model=Tour)
async def get_tour(
    request: GetTourRequest,
    db: AsyncSession = DatabaseSession,
    ctx: ServiceContext = OrganizationScope,
) -> JSONResponse:
    tour_service = TourService(db, ctx)

    async def operation():
        return Tour.model_validate(await tour_service.get_tour_by_id_or_raise(request.tour_id))

    return await execute_operation("tour retrieval", operation, tour_id=str(request.tour_id))
