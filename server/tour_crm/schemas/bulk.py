"""Bulk booking operation schemas."""

from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from ..models.booking import PaymentStatus
from .booking import RescheduleTarget

MAX_BULK_ITEMS = 100


class BulkBookingIdsRequest(BaseModel):
    """Request schema carrying the bookings a bulk operation applies to."""

    booking_ids: list[UUID] = Field(..., max_length=MAX_BULK_ITEMS)


class BulkCancelRequest(BulkBookingIdsRequest):
    reason: Optional[str] = Field(None, max_length=2000)


class BulkPaymentStatusRequest(BulkBookingIdsRequest):
    payment_status: PaymentStatus


class BulkRescheduleRequest(RescheduleTarget):
    """Move every listed booking to the same destination."""

    booking_ids: list[UUID] = Field(..., max_length=MAX_BULK_ITEMS)


class BulkError(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    error: str


class BulkResult(BaseModel):
    """Per-item outcome of a bulk operation."""

    model_config = ConfigDict(from_attributes=True)

    succeeded_ids: list[UUID]
    errors: list[BulkError]
