"""Availability window, departure time and blackout date model definitions."""

import datetime as dt
from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
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
    from .tour import Tour

ALL_DAYS = [0, 1, 2, 3, 4, 5, 6]


class AvailabilityWindow(Base):
    """Recurring rule describing which dates and weekdays a tour operates."""

    __tablename__ = "tour_availability_windows"
    __mapper_args__ = {"eager_defaults": True}

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

    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    # Open-ended when null
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    # 0 = Sunday ... 6 = Saturday
    days_of_week: Mapped[list[int]] = mapped_column(
        JSON,
        nullable=False,
        default=lambda: list(ALL_DAYS)
    )

    max_participants_override: Mapped[int | None] = mapped_column(Integer, nullable=True)
    price_override: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    meeting_point_override: Mapped[str | None] = mapped_column(Text, nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        nullable=False,
        server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        nullable=False,
        server_default=func.now(),
        onupdate=func.now()
    )

    __table_args__ = (
        CheckConstraint(
            "end_date IS NULL OR end_date >= start_date",
            name="ck_window_end_after_start"
        ),
        CheckConstraint(
            "max_participants_override IS NULL OR max_participants_override > 0",
            name="ck_window_capacity_override_positive"
        ),
    )

    tour: Mapped["Tour"] = relationship("Tour", back_populates="availability_windows")

    def covers(self, day: date) -> bool:
        """True when ``day`` falls inside the date range and on an operating weekday."""
        if day < self.start_date:
            return False
        if self.end_date is not None and day > self.end_date:
            return False
        return (day.weekday() + 1) % 7 in (self.days_of_week or [])

    def __repr__(self) -> str:
        return (
            f"<AvailabilityWindow(id={self.id}, tour_id={self.tour_id}, "
            f"start_date={self.start_date}, end_date={self.end_date})>"
        )


class DepartureTime(Base):
    """Time of day at which a tour departs."""

    __tablename__ = "tour_departure_times"
    __mapper_args__ = {"eager_defaults": True}

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

    # HH:MM
    time: Mapped[str] = mapped_column(String(5), nullable=False)
    label: Mapped[str | None] = mapped_column(String(100), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(
        nullable=False,
        server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("tour_id", "time", name="uq_departure_time_tour_time"),
    )

    tour: Mapped["Tour"] = relationship("Tour", back_populates="departure_times")

    def __repr__(self) -> str:
        return f"<DepartureTime(id={self.id}, tour_id={self.tour_id}, time='{self.time}')>"


class BlackoutDate(Base):
    """Calendar date on which a tour never operates."""

    __tablename__ = "tour_blackout_dates"
    __mapper_args__ = {"eager_defaults": True}

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

    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        nullable=False,
        server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("tour_id", "date", name="uq_blackout_tour_date"),
    )

    tour: Mapped["Tour"] = relationship("Tour", back_populates="blackout_dates")

    def __repr__(self) -> str:
        return f"<BlackoutDate(id={self.id}, tour_id={self.tour_id}, date={self.date})>"
