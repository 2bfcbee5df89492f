"""FastAPI routers package."""

from .availability import router as availability_router
from .booking import router as booking_router
from .bulk import router as bulk_router
from .customer import router as customer_router
from .health import router as health_router
from .metrics import router as metrics_router
from .stats import router as stats_router
from .tour import router as tour_router

__all__ = [
    "availability_router",
    "booking_router",
    "bulk_router",
    "customer_router",
    "health_router",
    "metrics_router",
    "stats_router",
    "tour_router",
]
