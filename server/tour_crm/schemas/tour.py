"""Tour-related Pydantic schemas."""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from ..models.tour import TourStatus


class CreateTourRequest(BaseModel):
    """Request schema for creating a tour."""

    name: str = Field(..., min_length=1, max_length=255, description="Tour name")
    slug: str = Field(..., min_length=1, max_length=255, pattern=r"^[a-z0-9-]+$", description="URL-friendly slug")
    description: Optional[str] = Field(None, max_length=2000, description="Tour description")
    meeting_point: Optional[str] = None
    duration_minutes: int = Field(60, ge=1, le=24 * 60)
    max_participants: int = Field(..., ge=1, le=1000, description="Default capacity per departure")
    guests_per_guide: int = Field(6, ge=1, le=100)
    base_price: Decimal = Field(..., ge=0, description="Price per adult")
    currency: str = Field("USD", min_length=3, max_length=3, pattern=r"^[A-Z]{3}$")
    status: TourStatus = TourStatus.ACTIVE
    allow_same_day_booking: bool = True
    same_day_cutoff_time: Optional[str] = Field(None, description="HH:MM after which same-day booking closes")


class GetTourRequest(BaseModel):
    """Request schema for getting a tour."""

    tour_id: UUID = Field(..., description="Tour to retrieve")


class Tour(BaseModel):
    """Tour response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(..., description="Unique tour ID")
    name: str = Field(..., description="Tour name")
    slug: str = Field(..., description="URL-friendly slug")
    description: Optional[str] = None
    meeting_point: Optional[str] = None
    duration_minutes: int
    max_participants: int
    guests_per_guide: int
    base_price: Decimal
    currency: str
    status: TourStatus
    allow_same_day_booking: bool
    same_day_cutoff_time: Optional[str] = None
    created_at: datetime
