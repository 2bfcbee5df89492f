#!/usr/bin/env python3
"""Setup script for the tour CRM API: migrate the database and seed a demo operator."""

import asyncio
import logging
import sys
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from pathlib import Path

# Add the server directory to the Python path
server_dir = Path(__file__).parent.parent / "server"
sys.path.insert(0, str(server_dir))

import jwt
from alembic import command
from alembic.config import Config
from sqlalchemy import select

from tour_crm.core.config import settings
from tour_crm.core.database import async_session_factory
from tour_crm.core.dependencies import ServiceContext
from tour_crm.models import Organization, Schedule
from tour_crm.schemas.availability import (
    CreateAvailabilityWindowRequest,
    CreateBlackoutDateRequest,
    CreateDepartureTimeRequest,
)
from tour_crm.schemas.booking import CreateBookingRequest
from tour_crm.schemas.customer import CreateCustomerRequest
from tour_crm.schemas.tour import CreateTourRequest
from tour_crm.services.availability_service import TourAvailabilityService
from tour_crm.services.booking_command_service import BookingCommandService
from tour_crm.services.customer_service import CustomerService
from tour_crm.services.tour_service import TourService

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

DEMO_ORGANIZATION_SLUG = "harbour-walks"


def run_migrations():
    """Bring the schema up to the latest revision."""
    alembic_cfg = Config(str(server_dir / "db" / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(server_dir / "db" / "alembic"))

    logger.info("Running database migrations...")
    command.upgrade(alembic_cfg, "head")
    logger.info("Database migrations completed")


def _next_weekday(weekday: int) -> date:
    """Next date (after today) falling on the given Python weekday, 0 = Monday."""
    today = date.today()
    return today + timedelta(days=(weekday - today.weekday() - 1) % 7 + 1)


async def create_sample_data():
    """
    Create a demo operator with two tours, one per capacity model.

    The walking tour runs on availability windows; the boat trip keeps a
    materialized schedule with its own counter.
    """
    logger.info("Creating sample data...")

    async with async_session_factory() as db:
        existing = await db.execute(
            select(Organization).where(Organization.slug == DEMO_ORGANIZATION_SLUG)
        )
        organization = existing.scalar_one_or_none()
        if organization is not None:
            logger.info("Sample data already exists, skipping...")
            return organization.id

        organization = Organization(name="Harbour Walks", slug=DEMO_ORGANIZATION_SLUG)
        db.add(organization)
        await db.commit()

        ctx = ServiceContext(organization_id=organization.id, user_id="setup")
        tours = TourService(db, ctx)
        availability = TourAvailabilityService(db, ctx)
        customers = CustomerService(db, ctx)
        bookings = BookingCommandService(db, ctx)

        walk = await tours.create_tour(CreateTourRequest(
            name="Old Town Walk",
            slug="old-town-walk",
            description="Cobbled lanes, hidden courtyards and the harbour front",
            meeting_point="Fountain on Market Square",
            duration_minutes=120,
            max_participants=16,
            guests_per_guide=8,
            base_price=Decimal("25.00"),
            same_day_cutoff_time="08:00",
        ))
        await availability.create_availability_window(CreateAvailabilityWindowRequest(
            tour_id=walk.id,
            name="All year",
            start_date=date.today(),
            days_of_week=[1, 2, 3, 4, 5, 6],
        ))
        await availability.create_availability_window(CreateAvailabilityWindowRequest(
            tour_id=walk.id,
            name="Festival week",
            start_date=_next_weekday(0),
            end_date=_next_weekday(0) + timedelta(days=6),
            days_of_week=[0, 1, 2, 3, 4, 5, 6],
            max_participants_override=24,
            price_override=Decimal("30.00"),
        ))
        for departure, label in (("10:00", "Morning"), ("14:30", "Afternoon")):
            await availability.create_departure_time(CreateDepartureTimeRequest(
                tour_id=walk.id,
                time=departure,
                label=label,
            ))
        await availability.create_blackout_date(CreateBlackoutDateRequest(
            tour_id=walk.id,
            date=_next_weekday(2) + timedelta(weeks=2),
            reason="Harbour regatta",
        ))

        boat = await tours.create_tour(CreateTourRequest(
            name="Sunset Boat Trip",
            slug="sunset-boat-trip",
            description="Ninety minutes along the coast at golden hour",
            duration_minutes=90,
            max_participants=12,
            guests_per_guide=12,
            base_price=Decimal("45.00"),
        ))
        starts_at = datetime.combine(_next_weekday(4), time(18, 30), tzinfo=timezone.utc)
        sunset = Schedule(
            organization_id=organization.id,
            tour_id=boat.id,
            starts_at=starts_at,
            ends_at=starts_at + timedelta(minutes=boat.duration_minutes),
            max_participants=boat.max_participants,
            currency=boat.currency,
        )
        db.add(sunset)
        await db.commit()

        ada = await customers.create_customer(CreateCustomerRequest(
            first_name="Ada",
            last_name="Lovelace",
            email="ada@example.com",
        ))
        await bookings.create_booking(CreateBookingRequest(
            customer_id=ada.id,
            tour_id=walk.id,
            booking_date=_next_weekday(1),
            booking_time="10:00",
            adult_count=2,
            child_count=1,
        ))
        await bookings.create_booking(CreateBookingRequest(
            customer_id=ada.id,
            schedule_id=sunset.id,
            adult_count=2,
        ))

        logger.info(
            "Sample data created successfully!",
            extra={"organization_id": str(organization.id)}
        )
        return organization.id


def demo_token(organization_id) -> str:
    """Bearer token scoped to the demo organization."""
    return jwt.encode(
        {"sub": "demo-user", "org_id": str(organization_id)},
        settings.bearer_token_secret,
        algorithm="HS256",
    )


async def main():
    """Main setup function."""
    logger.info("Starting tour CRM API setup...")

    # Alembic's environment runs its own event loop
    await asyncio.to_thread(run_migrations)

    organization_id = await create_sample_data()

    logger.info("Setup completed successfully!")
    logger.info(f"Demo bearer token: {demo_token(organization_id)}")
    logger.info("You can now start the API server with: cd server && uvicorn tour_crm.main:app --reload")


if __name__ == "__main__":
    asyncio.run(main())
