"""Tour model definition."""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.database import Base

if TYPE_CHECKING:
    from .availability import AvailabilityWindow, BlackoutDate, DepartureTime
    from .schedule import Schedule


class TourStatus(str, Enum):
    """Tour status enumeration."""
    DRAFT = "draft"
    ACTIVE = "active"
    INACTIVE = "inactive"
    ARCHIVED = "archived"


class Tour(Base):
    """Tour entity representing a bookable product of an operator."""

    __tablename__ = "tours"
    __mapper_args__ = {"eager_defaults": True}

    # Primary key
    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    organization_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    # Tour information
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    slug: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    meeting_point: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Capacity and pricing
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=60)
    max_participants: Mapped[int] = mapped_column(Integer, nullable=False)
    guests_per_guide: Mapped[int] = mapped_column(Integer, nullable=False, default=6)
    base_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")

    status: Mapped[TourStatus] = mapped_column(
        String(20),
        nullable=False,
        default=TourStatus.DRAFT,
        index=True
    )

    # Same-day booking policy
    allow_same_day_booking: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    same_day_cutoff_time: Mapped[str | None] = mapped_column(String(5), nullable=True)

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
        UniqueConstraint("organization_id", "slug", name="uq_tour_org_slug"),
        CheckConstraint("max_participants > 0", name="ck_tour_max_participants_positive"),
        CheckConstraint("guests_per_guide > 0", name="ck_tour_guests_per_guide_positive"),
        CheckConstraint("base_price >= 0", name="ck_tour_base_price_non_negative"),
        CheckConstraint("length(currency) = 3", name="ck_tour_currency_length"),
    )

    # Relationships
    availability_windows: Mapped[list["AvailabilityWindow"]] = relationship(
        "AvailabilityWindow",
        back_populates="tour",
        cascade="all, delete-orphan"
    )
    departure_times: Mapped[list["DepartureTime"]] = relationship(
        "DepartureTime",
        back_populates="tour",
        cascade="all, delete-orphan"
    )
    blackout_dates: Mapped[list["BlackoutDate"]] = relationship(
        "BlackoutDate",
        back_populates="tour",
        cascade="all, delete-orphan"
    )
    schedules: Mapped[list["Schedule"]] = relationship(
        "Schedule",
        back_populates="tour",
        cascade="all, delete-orphan"
    )

    @property
    def is_active(self) -> bool:
        return self.status == TourStatus.ACTIVE

    def __repr__(self) -> str:
        return f"<Tour(id={self.id}, name='{self.name}', slug='{self.slug}')>"
