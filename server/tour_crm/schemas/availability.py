"""Availability-related Pydantic schemas."""

import datetime as dt
from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

MAX_HEATMAP_DAYS = 93


def _validate_days_of_week(v: Optional[list[int]]) -> Optional[list[int]]:
    if v is None:
        return v
    if not v:
        raise ValueError("At least one day of week is required")
    if any(day < 0 or day > 6 for day in v):
        raise ValueError("Days of week must be between 0 (Sunday) and 6 (Saturday)")
    return sorted(set(v))


class CheckSlotRequest(BaseModel):
    """Request schema for checking a single slot."""

    tour_id: UUID = Field(..., description="Tour ID")
    date: dt.date = Field(..., description="Tour date")
    time: str = Field(..., description="Departure time (HH:MM)")
    requested_spots: int = Field(1, ge=0, le=500, description="Guests to place; 0 reads capacity only")
    exclude_booking_id: Optional[UUID] = Field(None, description="Booking to leave out of the booked count")


class SlotAvailability(BaseModel):
    """Response schema for a slot check."""

    model_config = ConfigDict(from_attributes=True)

    available: bool
    spots_remaining: int
    max_capacity: int
    booked_count: int
    reason: Optional[str] = Field(None, description="Reason code when unavailable")
    message: Optional[str] = Field(None, description="Human-readable reason")


class MonthAvailabilityRequest(BaseModel):
    """Request schema for a tour's calendar month."""

    tour_id: UUID = Field(..., description="Tour ID")
    year: int = Field(..., ge=2000, le=2100)
    month: int = Field(..., ge=1, le=12)


class DateSlot(BaseModel):
    """One departure on a calendar day."""

    model_config = ConfigDict(from_attributes=True)

    time: str
    label: Optional[str] = None
    spots_remaining: int
    max_capacity: int
    booked_count: int
    available: bool
    almost_full: bool


class AvailableDate(BaseModel):
    """One calendar day."""

    model_config = ConfigDict(from_attributes=True)

    date: dt.date
    slots: list[DateSlot]
    is_blacked_out: bool = False
    blackout_reason: Optional[str] = None


class MonthAvailability(BaseModel):
    """Response schema for a calendar month."""

    model_config = ConfigDict(from_attributes=True)

    tour_id: str
    tour_name: str
    year: int
    month: int
    dates: list[AvailableDate]
    operating_days: list[int]


class HeatmapRequest(BaseModel):
    """Request schema for the capacity heatmap."""

    start_date: date
    end_date: date
    tour_ids: Optional[list[UUID]] = Field(None, description="Limit to these tours")

    @model_validator(mode="after")
    def validate_range(self) -> "HeatmapRequest":
        if self.end_date < self.start_date:
            raise ValueError("end_date must be on or after start_date")
        if (self.end_date - self.start_date).days >= MAX_HEATMAP_DAYS:
            raise ValueError(f"Heatmap range cannot exceed {MAX_HEATMAP_DAYS} days")
        return self


class CapacityHeatmapEntry(BaseModel):
    """Utilization of one slot."""

    model_config = ConfigDict(from_attributes=True)

    date: dt.date
    time: str
    tour_id: str
    tour_name: str
    max_capacity: int
    booked_count: int
    utilization_percent: int
    status: str


class HeatmapResponse(BaseModel):
    """Response schema for the capacity heatmap."""

    entries: list[CapacityHeatmapEntry]


class CreateAvailabilityWindowRequest(BaseModel):
    """Request schema for creating an availability window."""

    tour_id: UUID
    name: Optional[str] = Field(None, max_length=255)
    start_date: date
    end_date: Optional[date] = Field(None, description="Leave empty for an open-ended window")
    days_of_week: list[int] = Field(
        default_factory=lambda: [0, 1, 2, 3, 4, 5, 6],
        description="Operating weekdays, 0 = Sunday"
    )
    max_participants_override: Optional[int] = Field(None, ge=1, le=1000)
    price_override: Optional[Decimal] = Field(None, ge=0)
    meeting_point_override: Optional[str] = None
    is_active: bool = True
    notes: Optional[str] = None

    @field_validator("days_of_week")
    @classmethod
    def validate_days_of_week(cls, v):
        return _validate_days_of_week(v)

    @model_validator(mode="after")
    def validate_dates(self) -> "CreateAvailabilityWindowRequest":
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("end_date must be on or after start_date")
        return self


class UpdateAvailabilityWindowRequest(BaseModel):
    """Request schema for updating an availability window."""

    window_id: UUID
    name: Optional[str] = Field(None, max_length=255)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    days_of_week: Optional[list[int]] = None
    max_participants_override: Optional[int] = Field(None, ge=1, le=1000)
    price_override: Optional[Decimal] = Field(None, ge=0)
    meeting_point_override: Optional[str] = None
    is_active: Optional[bool] = None
    notes: Optional[str] = None

    @field_validator("days_of_week")
    @classmethod
    def validate_days_of_week(cls, v):
        return _validate_days_of_week(v)


class AvailabilityWindowResponse(BaseModel):
    """Availability window response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    tour_id: UUID
    name: Optional[str] = None
    start_date: date
    end_date: Optional[date] = None
    days_of_week: list[int]
    max_participants_override: Optional[int] = None
    price_override: Optional[Decimal] = None
    meeting_point_override: Optional[str] = None
    is_active: bool
    notes: Optional[str] = None
    created_at: datetime


class CreateDepartureTimeRequest(BaseModel):
    """Request schema for adding a departure time."""

    tour_id: UUID
    time: str = Field(..., description="HH:MM")
    label: Optional[str] = Field(None, max_length=100)
    is_active: bool = True
    sort_order: int = 0


class UpdateDepartureTimeRequest(BaseModel):
    """Request schema for updating a departure time."""

    departure_time_id: UUID
    time: Optional[str] = None
    label: Optional[str] = Field(None, max_length=100)
    is_active: Optional[bool] = None
    sort_order: Optional[int] = None


class DepartureTimeResponse(BaseModel):
    """Departure time response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    tour_id: UUID
    time: str
    label: Optional[str] = None
    is_active: bool
    sort_order: int


class CreateBlackoutDateRequest(BaseModel):
    """Request schema for blacking out a date."""

    tour_id: UUID
    date: dt.date
    reason: Optional[str] = None


class BlackoutDateResponse(BaseModel):
    """Blackout date response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    tour_id: UUID
    date: dt.date
    reason: Optional[str] = None


class DeleteWindowRequest(BaseModel):
    window_id: UUID


class DeleteDepartureTimeRequest(BaseModel):
    departure_time_id: UUID


class DeleteBlackoutDateRequest(BaseModel):
    blackout_date_id: UUID


class DeleteResponse(BaseModel):
    id: UUID
    deleted: bool = True


class TourAvailabilityConfigRequest(BaseModel):
    """Request schema for a tour's availability configuration."""

    tour_id: UUID
    blackout_from: Optional[date] = Field(None, description="Only blackouts on or after this date")
    blackout_to: Optional[date] = Field(None, description="Only blackouts on or before this date")


class TourAvailabilityConfig(BaseModel):
    """Windows, departure times and blackouts of one tour."""

    model_config = ConfigDict(from_attributes=True)

    tour_id: UUID
    windows: list[AvailabilityWindowResponse]
    departure_times: list[DepartureTimeResponse]
    blackout_dates: list[BlackoutDateResponse]
