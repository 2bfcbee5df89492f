"""Guide staffing recalculation for schedules."""

import logging
import math
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.exceptions import NotFoundError
from ..core.tasks import BackgroundTaskDispatcher
from ..models.schedule import Schedule
from ..models.tour import Tour

logger = logging.getLogger(__name__)

# Shared by every request; drained on shutdown
guide_task_dispatcher = BackgroundTaskDispatcher("guide-recalculation")


def guides_needed(booked_count: int, guests_per_guide: int) -> int:
    if booked_count <= 0:
        return 0
    return math.ceil(booked_count / max(1, guests_per_guide))


class GuideRequirementService:
    """Keeps ``Schedule.guides_required`` in line with the booked count."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], organization_id: UUID):
        self.session_factory = session_factory
        self.organization_id = organization_id

    async def recalculate(self, schedule_id: UUID) -> int:
        """
        Recompute and store the guides a schedule needs.

        Runs in its own session so it never shares the booking transaction.

        Returns:
            The new guide count
        """
        async with self.session_factory() as session:
            stmt = (
                select(Schedule.booked_count, Tour.guests_per_guide)
                .join(Tour, Tour.id == Schedule.tour_id)
                .where(
                    Schedule.id == schedule_id,
                    Schedule.organization_id == self.organization_id,
                )
            )
            row = (await session.execute(stmt)).first()
            if row is None:
                raise NotFoundError(resource_type="schedule", resource_id=str(schedule_id))

            booked_count, guests_per_guide = row
            required = guides_needed(booked_count, guests_per_guide)

            await session.execute(
                update(Schedule)
                .where(
                    Schedule.id == schedule_id,
                    Schedule.organization_id == self.organization_id,
                )
                .values(guides_required=required)
            )
            await session.commit()

        logger.info(
            "Guide requirement recalculated",
            extra={
                "schedule_id": str(schedule_id),
                "booked_count": booked_count,
                "guides_required": required,
            }
        )
        return required


class GuideRecalculator:
    """Fire-and-forget front for :class:`GuideRequirementService`."""

    def __init__(
        self,
        service: GuideRequirementService,
        dispatcher: BackgroundTaskDispatcher = guide_task_dispatcher,
    ):
        self.service = service
        self.dispatcher = dispatcher

    def request_recalculation(self, schedule_id: UUID) -> None:
        self.dispatcher.dispatch(
            self.service.recalculate(schedule_id),
            f"guide_recalculation:{schedule_id}",
            schedule_id=str(schedule_id),
        )
