"""Booking and BookingParticipant model definitions."""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
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
    from .customer import Customer
    from .schedule import Schedule
    from .tour import Tour


class BookingStatus(str, Enum):
    """Booking status enumeration."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    NO_SHOW = "no_show"


class PaymentStatus(str, Enum):
    """Payment status enumeration."""
    PENDING = "pending"
    PARTIAL = "partial"
    PAID = "paid"
    REFUNDED = "refunded"
    FAILED = "failed"


class BookingSource(str, Enum):
    """Channel a booking came in through."""
    MANUAL = "manual"
    WEBSITE = "website"
    API = "api"
    PHONE = "phone"
    WALK_IN = "walk_in"


class ParticipantType(str, Enum):
    """Participant age band."""
    ADULT = "adult"
    CHILD = "child"
    INFANT = "infant"


# Bookings in these states hold capacity
ACTIVE_BOOKING_STATUSES = (BookingStatus.PENDING.value, BookingStatus.CONFIRMED.value)


class Booking(Base):
    """Booking entity representing a reservation for one tour run."""

    __tablename__ = "bookings"
    __mapper_args__ = {"eager_defaults": True}

    # Primary key
    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    organization_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    reference_number: Mapped[str] = mapped_column(String(32), nullable=False)

    customer_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("customers.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )

    # Slot addressing (availability model)
    tour_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("tours.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )
    booking_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    booking_time: Mapped[str | None] = mapped_column(String(5), nullable=True)

    # Legacy materialized run
    schedule_id: Mapped[UUID | None] = mapped_column(
        Uuid,
        ForeignKey("schedules.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )

    # Guest counts, legacy and new fields are both written while the migration runs
    adult_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    child_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    infant_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    guest_adults: Mapped[int | None] = mapped_column(Integer, nullable=True)
    guest_children: Mapped[int | None] = mapped_column(Integer, nullable=True)
    guest_infants: Mapped[int | None] = mapped_column(Integer, nullable=True)
    total_participants: Mapped[int] = mapped_column(Integer, nullable=False)

    # Pricing
    subtotal: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    discount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    tax: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    total: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")

    status: Mapped[BookingStatus] = mapped_column(
        String(20),
        nullable=False,
        default=BookingStatus.PENDING,
        index=True
    )
    payment_status: Mapped[PaymentStatus] = mapped_column(
        String(20),
        nullable=False,
        default=PaymentStatus.PENDING,
        index=True
    )
    paid_amount: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)

    confirmed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    source: Mapped[BookingSource] = mapped_column(
        String(20),
        nullable=False,
        default=BookingSource.MANUAL
    )
    source_details: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Descriptive notes
    special_requests: Mapped[str | None] = mapped_column(Text, nullable=True)
    dietary_requirements: Mapped[str | None] = mapped_column(Text, nullable=True)
    accessibility_needs: Mapped[str | None] = mapped_column(Text, nullable=True)
    internal_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        nullable=False,
        server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        nullable=False,
        server_default=func.now(),
        onupdate=func.now()
    )

    # Constraints
    __table_args__ = (
        UniqueConstraint("organization_id", "reference_number", name="uq_booking_org_reference"),
        Index("ix_booking_slot", "organization_id", "tour_id", "booking_date", "booking_time"),
        CheckConstraint("adult_count >= 0", name="ck_booking_adult_count_non_negative"),
        CheckConstraint("child_count >= 0", name="ck_booking_child_count_non_negative"),
        CheckConstraint("infant_count >= 0", name="ck_booking_infant_count_non_negative"),
        CheckConstraint("total_participants > 0", name="ck_booking_total_participants_positive"),
        CheckConstraint("length(reference_number) > 0", name="ck_booking_reference_not_empty"),
    )

    # Relationships
    customer: Mapped["Customer"] = relationship("Customer", back_populates="bookings")
    tour: Mapped["Tour"] = relationship("Tour")
    schedule: Mapped["Schedule | None"] = relationship("Schedule", back_populates="bookings")
    participants: Mapped[list["BookingParticipant"]] = relationship(
        "BookingParticipant",
        back_populates="booking",
        cascade="all, delete-orphan",
        order_by="BookingParticipant.created_at"
    )

    def __repr__(self) -> str:
        return (
            f"<Booking(id={self.id}, reference='{self.reference_number}', "
            f"participants={self.total_participants}, status={self.status})>"
        )


class BookingParticipant(Base):
    """Per-guest detail row; capacity math only uses the booking's counts."""

    __tablename__ = "booking_participants"
    __mapper_args__ = {"eager_defaults": True}

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    organization_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    booking_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("bookings.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    type: Mapped[ParticipantType] = mapped_column(
        String(20),
        nullable=False,
        default=ParticipantType.ADULT
    )
    dietary_requirements: Mapped[str | None] = mapped_column(Text, nullable=True)
    accessibility_needs: Mapped[str | None] = mapped_column(Text, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        nullable=False,
        server_default=func.now()
    )

    booking: Mapped["Booking"] = relationship("Booking", back_populates="participants")

    def __repr__(self) -> str:
        return f"<BookingParticipant(id={self.id}, booking_id={self.booking_id}, type={self.type})>"
