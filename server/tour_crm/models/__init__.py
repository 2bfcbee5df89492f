"""Models module exporting all database models."""

from .availability import AvailabilityWindow, BlackoutDate, DepartureTime
from .booking import (
    ACTIVE_BOOKING_STATUSES,
    Booking,
    BookingParticipant,
    BookingSource,
    BookingStatus,
    ParticipantType,
    PaymentStatus,
)
from .customer import Customer
from .organization import Organization
from .schedule import Schedule, ScheduleStatus
from .tour import Tour, TourStatus

__all__ = [
    # Tenancy
    "Organization",

    # Catalog
    "Tour",
    "TourStatus",
    "Customer",

    # Availability configuration
    "AvailabilityWindow",
    "DepartureTime",
    "BlackoutDate",

    # Legacy materialized runs
    "Schedule",
    "ScheduleStatus",

    # Booking entities
    "Booking",
    "BookingParticipant",
    "BookingStatus",
    "PaymentStatus",
    "BookingSource",
    "ParticipantType",
    "ACTIVE_BOOKING_STATUSES",
]
