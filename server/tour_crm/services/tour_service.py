"""Tour service for business logic operations."""

import logging
from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import IntegrityError

from ..core.dependencies import ServiceContext
from ..core.exceptions import NotFoundError, ValidationError
from ..models.tour import Tour
from ..schemas.tour import CreateTourRequest
from .availability_service import validate_time_format

logger = logging.getLogger(__name__)


class TourService:
    """Service for tour-related operations."""

    def __init__(self, db: AsyncSession, ctx: ServiceContext):
        self.db = db
        self.organization_id = ctx.organization_id

    async def create_tour(self, request: CreateTourRequest) -> Tour:
        """
        Create a new tour.

        Args:
            request: Tour creation request

        Returns:
            Created tour entity

        Raises:
            ValidationError: If the slug is taken or the cutoff time is malformed
        """
        if request.same_day_cutoff_time is not None:
            validate_time_format(request.same_day_cutoff_time)

        existing_tour = await self.get_tour_by_slug(request.slug)
        if existing_tour:
            logger.warning(
                "Tour creation failed - slug already exists",
                extra={
                    "slug": request.slug,
                    "existing_tour_id": str(existing_tour.id)
                }
            )
            raise ValidationError(f"Tour with slug '{request.slug}' already exists")

        tour = Tour(
            organization_id=self.organization_id,
            **request.model_dump(),
        )

        try:
            self.db.add(tour)
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            logger.error(
                "Tour creation failed due to integrity constraint",
                extra={"slug": request.slug, "error": str(e)}
            )
            raise ValidationError("Tour creation failed due to constraint violation")

        await self.db.refresh(tour)
        logger.info(
            "Tour created successfully",
            extra={
                "tour_id": str(tour.id),
                "organization_id": str(self.organization_id),
                "slug": tour.slug,
            }
        )
        return tour

    async def get_tour_by_id(self, tour_id: UUID) -> Optional[Tour]:
        stmt = select(Tour).where(
            Tour.id == tour_id,
            Tour.organization_id == self.organization_id,
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_tour_by_slug(self, slug: str) -> Optional[Tour]:
        stmt = select(Tour).where(
            Tour.slug == slug,
            Tour.organization_id == self.organization_id,
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_tour_by_id_or_raise(self, tour_id: UUID) -> Tour:
        """
        Get tour by ID or raise NotFoundError.

        Raises:
            NotFoundError: If the tour is missing or belongs to another organization
        """
        tour = await self.get_tour_by_id(tour_id)
        if not tour:
            logger.warning(
                "Tour not found",
                extra={"tour_id": str(tour_id)}
            )
            raise NotFoundError(
                resource_type="tour",
                resource_id=str(tour_id)
            )
        return tour
