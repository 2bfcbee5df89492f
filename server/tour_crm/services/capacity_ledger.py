"""Capacity reservation for both capacity models."""

import logging
from dataclasses import dataclass
from datetime import date
from typing import Optional, Union
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import floor_at_zero
from ..core.dependencies import ServiceContext
from ..core.exceptions import CapacityExceededError, NotFoundError, ValidationError
from ..core.observability import metrics_collector
from ..models.schedule import Schedule

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MaterializedCapacity:
    """Legacy model: capacity is the ``booked_count`` counter of a schedule row."""
    schedule_id: UUID


@dataclass(frozen=True)
class DynamicCapacity:
    """Availability model: capacity is recomputed from active bookings of a slot."""
    tour_id: UUID
    booking_date: date
    booking_time: str


CapacityModel = Union[MaterializedCapacity, DynamicCapacity]


def resolve_capacity_model(
    schedule_id: Optional[UUID] = None,
    tour_id: Optional[UUID] = None,
    booking_date: Optional[date] = None,
    booking_time: Optional[str] = None,
) -> CapacityModel:
    """
    Pick the capacity model from the fields a request carries.

    A schedule id selects the materialized model; otherwise tour, date and
    time are all required.

    Raises:
        ValidationError: If neither set of fields is complete
    """
    if schedule_id is not None:
        return MaterializedCapacity(schedule_id=schedule_id)
    if tour_id is not None and booking_date is not None and booking_time:
        return DynamicCapacity(tour_id=tour_id, booking_date=booking_date, booking_time=booking_time)
    raise ValidationError(
        "Must provide schedule_id, or tour_id with booking_date and booking_time"
    )


def capacity_model_of(booking) -> CapacityModel:
    """Capacity model an existing booking is held under."""
    return resolve_capacity_model(
        schedule_id=booking.schedule_id,
        tour_id=booking.tour_id,
        booking_date=booking.booking_date,
        booking_time=booking.booking_time,
    )


def capacity_model_name(model: CapacityModel) -> str:
    if isinstance(model, MaterializedCapacity):
        return "materialized"
    if isinstance(model, DynamicCapacity):
        return "dynamic"
    raise TypeError(f"Unknown capacity model: {model!r}")


class CapacityLedger:
    """
    Reserves and releases schedule capacity inside the caller's transaction.

    Nothing here commits. The guarded UPDATE re-validates capacity at write
    time, so concurrent reservations can never push ``booked_count`` past
    ``max_participants``. The dynamic model has no counter to guard.
    """

    def __init__(self, db: AsyncSession, ctx: ServiceContext):
        self.db = db
        self.organization_id = ctx.organization_id

    async def reserve(self, schedule_id: UUID, delta: int) -> None:
        """
        Add ``delta`` participants to a schedule if they fit.

        Raises:
            CapacityExceededError: If the guard rejected the increment
            NotFoundError: If the schedule is not in the organization
        """
        if delta < 0:
            raise ValueError("Reservation delta must not be negative")
        if delta == 0:
            return

        stmt = (
            update(Schedule)
            .where(
                Schedule.id == schedule_id,
                Schedule.organization_id == self.organization_id,
                Schedule.booked_count + delta <= Schedule.max_participants,
            )
            .values(booked_count=Schedule.booked_count + delta)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        if result.rowcount:
            logger.debug(
                "Schedule capacity reserved",
                extra={"schedule_id": str(schedule_id), "delta": delta}
            )
            return

        current = await self.db.execute(
            select(Schedule.booked_count, Schedule.max_participants).where(
                Schedule.id == schedule_id,
                Schedule.organization_id == self.organization_id,
            )
        )
        row = current.first()
        if row is None:
            raise NotFoundError(resource_type="schedule", resource_id=str(schedule_id))

        booked_count, max_participants = row
        logger.warning(
            "Schedule capacity guard rejected reservation",
            extra={
                "schedule_id": str(schedule_id),
                "organization_id": str(self.organization_id),
                "requested": delta,
                "booked_count": booked_count,
                "max_participants": max_participants,
            }
        )
        metrics_collector.record_capacity_conflict()
        raise CapacityExceededError(
            schedule_id=str(schedule_id),
            requested=delta,
            booked_count=booked_count,
            max_participants=max_participants,
        )

    async def release(self, schedule_id: UUID, delta: int) -> None:
        """Give ``delta`` participants back, never going below zero."""
        if delta <= 0:
            return

        stmt = (
            update(Schedule)
            .where(
                Schedule.id == schedule_id,
                Schedule.organization_id == self.organization_id,
            )
            .values(booked_count=floor_at_zero(self.db, Schedule.booked_count - delta))
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        if not result.rowcount:
            logger.warning(
                "Capacity release matched no schedule",
                extra={"schedule_id": str(schedule_id), "delta": delta}
            )

    async def reserve_for(self, model: CapacityModel, delta: int) -> None:
        if isinstance(model, MaterializedCapacity):
            await self.reserve(model.schedule_id, delta)
        elif isinstance(model, DynamicCapacity):
            # Recomputed from bookings on every read
            return
        else:
            raise TypeError(f"Unknown capacity model: {model!r}")

    async def release_for(self, model: CapacityModel, delta: int) -> None:
        if isinstance(model, MaterializedCapacity):
            await self.release(model.schedule_id, delta)
        elif isinstance(model, DynamicCapacity):
            return
        else:
            raise TypeError(f"Unknown capacity model: {model!r}")
