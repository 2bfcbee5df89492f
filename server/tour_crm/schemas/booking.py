"""Booking-related Pydantic schemas."""

import datetime as dt
from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..models.booking import BookingSource, BookingStatus, ParticipantType, PaymentStatus
from .common import PaginatedResponse


class ParticipantInput(BaseModel):
    """Per-guest detail attached to a booking."""

    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    email: Optional[str] = Field(None, max_length=255)
    phone: Optional[str] = Field(None, max_length=50)
    type: ParticipantType = ParticipantType.ADULT
    dietary_requirements: Optional[str] = None
    accessibility_needs: Optional[str] = None
    notes: Optional[str] = None


class CreateBookingRequest(BaseModel):
    """
    Request schema for creating a booking.

    Either ``schedule_id`` or ``tour_id`` with ``booking_date`` and
    ``booking_time`` addresses the slot.
    """

    customer_id: UUID = Field(..., description="Customer making the booking")
    schedule_id: Optional[UUID] = Field(None, description="Materialized schedule to book")
    tour_id: Optional[UUID] = Field(None, description="Tour to book")
    booking_date: Optional[dt.date] = Field(None, description="Tour date")
    booking_time: Optional[str] = Field(None, description="Departure time (HH:MM)")

    adult_count: int = Field(1, ge=0, le=500)
    child_count: int = Field(0, ge=0, le=500)
    infant_count: int = Field(0, ge=0, le=500)

    # Caller-supplied pricing wins over computed pricing
    subtotal: Optional[Decimal] = Field(None, ge=0)
    discount: Optional[Decimal] = Field(None, ge=0)
    tax: Optional[Decimal] = Field(None, ge=0)
    total: Optional[Decimal] = Field(None, ge=0)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)

    source: BookingSource = BookingSource.MANUAL
    source_details: Optional[str] = None
    special_requests: Optional[str] = None
    dietary_requirements: Optional[str] = None
    accessibility_needs: Optional[str] = None
    internal_notes: Optional[str] = None

    participants: list[ParticipantInput] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_guest_counts(self) -> "CreateBookingRequest":
        if self.adult_count + self.child_count + self.infant_count <= 0:
            raise ValueError("At least one guest is required")
        return self


class UpdateBookingRequest(BaseModel):
    """Request schema for updating descriptive fields and guest counts."""

    booking_id: UUID
    adult_count: Optional[int] = Field(None, ge=0, le=500)
    child_count: Optional[int] = Field(None, ge=0, le=500)
    infant_count: Optional[int] = Field(None, ge=0, le=500)
    discount: Optional[Decimal] = Field(None, ge=0)
    tax: Optional[Decimal] = Field(None, ge=0)
    source_details: Optional[str] = None
    special_requests: Optional[str] = None
    dietary_requirements: Optional[str] = None
    accessibility_needs: Optional[str] = None
    internal_notes: Optional[str] = None


class BookingIdRequest(BaseModel):
    """Request schema addressing one booking."""

    booking_id: UUID = Field(..., description="Booking ID")


class CancelBookingRequest(BaseModel):
    """Request schema for cancelling a booking."""

    booking_id: UUID = Field(..., description="Booking to cancel")
    reason: Optional[str] = Field(None, max_length=2000, description="Cancellation reason")


class RescheduleTarget(BaseModel):
    """Destination of a reschedule: a schedule, or a date and time."""

    schedule_id: Optional[UUID] = None
    tour_id: Optional[UUID] = Field(None, description="Move to another tour; defaults to the current one")
    booking_date: Optional[dt.date] = None
    booking_time: Optional[str] = None

    @model_validator(mode="after")
    def validate_target(self) -> "RescheduleTarget":
        if self.schedule_id is None and (self.booking_date is None or not self.booking_time):
            raise ValueError("Provide schedule_id, or booking_date and booking_time")
        return self


class RescheduleBookingRequest(RescheduleTarget):
    """Request schema for rescheduling a booking."""

    booking_id: UUID


class UpdatePaymentStatusRequest(BaseModel):
    """Request schema for recording a payment status change."""

    booking_id: UUID
    payment_status: PaymentStatus
    paid_amount: Optional[Decimal] = Field(None, ge=0)


class ListBookingsRequest(BaseModel):
    """Request schema for listing bookings."""

    status: Optional[BookingStatus] = None
    payment_status: Optional[PaymentStatus] = None
    tour_id: Optional[UUID] = None
    customer_id: Optional[UUID] = None
    schedule_id: Optional[UUID] = None
    source: Optional[BookingSource] = None
    date_from: Optional[dt.date] = Field(None, description="Bookings on or after this tour date")
    date_to: Optional[dt.date] = Field(None, description="Bookings on or before this tour date")
    cursor: Optional[str] = Field(None, description="Pagination cursor")
    limit: int = Field(20, ge=1, le=100, description="Results per page")


class CustomerSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    first_name: str
    last_name: str
    email: Optional[str] = None
    phone: Optional[str] = None


class TourSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    slug: str
    currency: str


class ScheduleSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    starts_at: datetime
    ends_at: datetime
    max_participants: int
    booked_count: int
    guides_required: int
    status: str


class Participant(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    first_name: str
    last_name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    type: ParticipantType
    dietary_requirements: Optional[str] = None
    accessibility_needs: Optional[str] = None
    notes: Optional[str] = None


class Booking(BaseModel):
    """Booking response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(..., description="Unique booking ID")
    reference_number: str = Field(..., description="Human-readable reference")
    customer_id: UUID
    tour_id: UUID
    schedule_id: Optional[UUID] = None
    booking_date: Optional[dt.date] = None
    booking_time: Optional[str] = None

    adult_count: int
    child_count: int
    infant_count: int
    total_participants: int

    subtotal: Decimal
    discount: Decimal
    tax: Decimal
    total: Decimal
    currency: str

    status: BookingStatus
    payment_status: PaymentStatus
    paid_amount: Optional[Decimal] = None
    confirmed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None

    source: BookingSource
    source_details: Optional[str] = None
    special_requests: Optional[str] = None
    dietary_requirements: Optional[str] = None
    accessibility_needs: Optional[str] = None
    internal_notes: Optional[str] = None

    created_at: datetime
    updated_at: datetime

    customer: Optional[CustomerSummary] = None
    tour: Optional[TourSummary] = None
    schedule: Optional[ScheduleSummary] = None
    participants: list[Participant] = Field(default_factory=list)


class ListBookingsResponse(PaginatedResponse):
    """Response schema for booking listing."""

    items: list[Booking] = Field(..., description="Found bookings")
