"""Dashboard statistics schemas."""

import datetime as dt
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .booking import Booking


class BookingStatsRequest(BaseModel):
    """Request schema for booking statistics."""

    date_from: Optional[dt.date] = Field(None, description="Bookings created on or after this date")
    date_to: Optional[dt.date] = Field(None, description="Bookings created on or before this date")

    @model_validator(mode="after")
    def validate_range(self) -> "BookingStatsRequest":
        if self.date_from and self.date_to and self.date_to < self.date_from:
            raise ValueError("date_to must be on or after date_from")
        return self


class BookingStats(BaseModel):
    """Counts and revenue over a set of bookings."""

    model_config = ConfigDict(from_attributes=True)

    total: int
    pending: int
    confirmed: int
    completed: int
    cancelled: int
    no_show: int
    total_revenue: Decimal
    average_booking_value: Decimal
    total_participants: int


class BookingWithUrgency(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    booking: Booking
    urgency: str = Field(..., description="critical, high, medium, low, none or past")
    hours_until: Optional[float] = None
    time_until: Optional[str] = None


class UrgencyStats(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    needs_action: int
    critical: int
    pending_confirmation: int
    unpaid: int


class UrgencyGroups(BaseModel):
    """Upcoming bookings bucketed by urgency tier."""

    model_config = ConfigDict(from_attributes=True)

    critical: list[BookingWithUrgency]
    high: list[BookingWithUrgency]
    medium: list[BookingWithUrgency]
    low: list[BookingWithUrgency]
    stats: UrgencyStats


class NeedsAction(BaseModel):
    """Upcoming bookings that still need a confirmation or a payment."""

    model_config = ConfigDict(from_attributes=True)

    unconfirmed: list[Booking]
    unpaid: list[Booking]
    total: int


class UpcomingRequest(BaseModel):
    days: int = Field(7, ge=1, le=31, description="Days ahead, today included")


class UpcomingDayStats(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    total: int
    guests: int
    revenue: Decimal
    needs_action: int


class UpcomingDay(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    date: dt.date
    label: str
    bookings: list[Booking]
    stats: UpcomingDayStats


class UpcomingBookings(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    days: list[UpcomingDay]


class TodayBookings(BaseModel):
    """Today's bookings with a live countdown."""

    model_config = ConfigDict(from_attributes=True)

    date: dt.date
    bookings: list[BookingWithUrgency]
