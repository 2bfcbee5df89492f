"""Schedule model definition."""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.database import Base

if TYPE_CHECKING:
    from .booking import Booking
    from .tour import Tour


class ScheduleStatus(str, Enum):
    """Schedule status enumeration."""
    SCHEDULED = "scheduled"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class Schedule(Base):
    """
    Materialized run of a tour with its own capacity counter.

    ``booked_count`` is only ever changed through the guarded updates in the
    capacity ledger.
    """

    __tablename__ = "schedules"
    __mapper_args__ = {"eager_defaults": True}

    # Primary key
    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    organization_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    tour_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("tours.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    # Run details
    starts_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    ends_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    max_participants: Mapped[int] = mapped_column(Integer, nullable=False)
    booked_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    guides_required: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Price information, falls back to the tour's base price when null
    price: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    meeting_point: Mapped[str | None] = mapped_column(Text, nullable=True)

    status: Mapped[ScheduleStatus] = mapped_column(
        String(20),
        nullable=False,
        default=ScheduleStatus.SCHEDULED,
        index=True
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        nullable=False,
        server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        nullable=False,
        server_default=func.now(),
        onupdate=func.now()
    )

    # Constraints
    __table_args__ = (
        CheckConstraint("max_participants > 0", name="ck_schedule_max_participants_positive"),
        CheckConstraint("booked_count >= 0", name="ck_schedule_booked_count_non_negative"),
        CheckConstraint("booked_count <= max_participants", name="ck_schedule_booked_count_lte_max"),
        CheckConstraint("ends_at > starts_at", name="ck_schedule_ends_after_start"),
    )

    # Relationships
    tour: Mapped["Tour"] = relationship("Tour", back_populates="schedules")
    bookings: Mapped[list["Booking"]] = relationship("Booking", back_populates="schedule")

    @property
    def spots_remaining(self) -> int:
        return max(0, self.max_participants - self.booked_count)

    def __repr__(self) -> str:
        return (
            f"<Schedule(id={self.id}, tour_id={self.tour_id}, "
            f"starts_at={self.starts_at}, booked={self.booked_count}/{self.max_participants})>"
        )
