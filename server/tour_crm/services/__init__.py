"""Service layer package."""

from .availability_service import TourAvailabilityService
from .booking_bulk_service import BookingBulkService
from .booking_command_service import BookingCommandService
from .booking_query_service import BookingQueryService
from .booking_stats_service import BookingStatsService
from .capacity_ledger import CapacityLedger
from .customer_service import CustomerService
from .guide_requirement_service import GuideRecalculator, GuideRequirementService
from .tour_service import TourService

__all__ = [
    "BookingBulkService",
    "BookingCommandService",
    "BookingQueryService",
    "BookingStatsService",
    "CapacityLedger",
    "CustomerService",
    "GuideRecalculator",
    "GuideRequirementService",
    "TourAvailabilityService",
    "TourService",
]
