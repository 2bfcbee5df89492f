"""Bulk booking operations with per-item failure isolation."""

import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.database import session_factory_for
from ..core.dependencies import ServiceContext
from ..core.exceptions import NotFoundError, ValidationError, error_message
from ..core.observability import get_logger, metrics_collector
from ..models.booking import Booking, BookingStatus, PaymentStatus
from ..schemas.booking import RescheduleTarget
from . import booking_state
from .booking_command_service import BookingCommandService, claim_booking, raise_booking_changed
from .capacity_ledger import CapacityLedger
from .urgency import as_utc

logger = logging.getLogger(__name__)
audit_logger = get_logger(__name__)

BOOKING_NOT_FOUND = "Booking not found"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class BulkError:
    id: UUID
    error: str


@dataclass
class BulkResult:
    """Which items of a bulk operation went through and why the others did not."""
    succeeded_ids: List[UUID] = field(default_factory=list)
    errors: List[BulkError] = field(default_factory=list)


def _unique(booking_ids: Sequence[UUID]) -> List[UUID]:
    return list(dict.fromkeys(booking_ids))


class BookingBulkService:
    """
    Applies one operation to many bookings.

    Confirm, cancel and payment updates read every row in one query.
    Confirm and cancel then write row by row, each write guarded on the
    row being unchanged; payment updates go out in one statement.
    Reschedules differ per destination check, so each runs on its own
    session concurrently.
    """

    def __init__(
        self,
        db: AsyncSession,
        ctx: ServiceContext,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        guide_recalculator=None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.db = db
        self.ctx = ctx
        self.organization_id = ctx.organization_id
        self.session_factory = session_factory
        self.guide_recalculator = guide_recalculator
        self._clock = clock or _utcnow
        self.ledger = CapacityLedger(db, ctx)
        self.audit = audit_logger.with_context(
            organization_id=str(ctx.organization_id),
            user_id=ctx.user_id,
        )

    async def _fetch(self, booking_ids: Sequence[UUID]) -> Dict[UUID, Booking]:
        stmt = select(Booking).where(
            Booking.organization_id == self.organization_id,
            Booking.id.in_(list(booking_ids)),
        ).execution_options(populate_existing=True)
        result = await self.db.execute(stmt)
        return {booking.id: booking for booking in result.scalars()}

    def _partition(
        self,
        booking_ids: Sequence[UUID],
        rows: Dict[UUID, Booking],
        operation: Optional[str],
    ) -> Tuple[List[Booking], BulkResult]:
        """Split rows into those ``operation`` may act on and per-item errors."""
        eligible: List[Booking] = []
        result = BulkResult()
        for booking_id in booking_ids:
            booking = rows.get(booking_id)
            if booking is None:
                result.errors.append(BulkError(id=booking_id, error=BOOKING_NOT_FOUND))
                continue
            if operation is not None:
                try:
                    booking_state.ensure_transition(operation, booking.status)
                except ValidationError as e:
                    result.errors.append(BulkError(id=booking_id, error=e.message))
                    continue
            eligible.append(booking)
        return eligible, result

    def _finish(self, operation: str, result: BulkResult, **context) -> BulkResult:
        metrics_collector.record_bulk_items(operation, len(result.succeeded_ids), len(result.errors))
        self.audit.info(
            f"bulk_{operation}",
            succeeded_ids=[str(i) for i in result.succeeded_ids],
            failed=[{"id": str(e.id), "error": e.error} for e in result.errors],
            **context,
        )
        return result

    async def _claim_each(
        self,
        eligible: List[Booking],
        operation: str,
        result: BulkResult,
        **values,
    ) -> List[Booking]:
        """Write each row only if it is unchanged since the read; the rest become errors."""
        claimed: List[Booking] = []
        for booking in eligible:
            if await claim_booking(self.db, booking, **values):
                claimed.append(booking)
                continue
            try:
                await raise_booking_changed(self.db, booking.id, operation)
            except ValidationError as e:
                result.errors.append(BulkError(id=booking.id, error=e.message))
        return claimed

    async def bulk_confirm(self, booking_ids: Sequence[UUID]) -> BulkResult:
        booking_ids = _unique(booking_ids)
        if not booking_ids:
            return BulkResult()

        rows = await self._fetch(booking_ids)
        eligible, result = self._partition(booking_ids, rows, booking_state.CONFIRM)

        if eligible:
            try:
                claimed = await self._claim_each(
                    eligible,
                    booking_state.CONFIRM,
                    result,
                    status=BookingStatus.CONFIRMED.value,
                    confirmed_at=as_utc(self._clock()),
                )
                await self.db.commit()
            except Exception:
                await self.db.rollback()
                raise
            result.succeeded_ids = [b.id for b in claimed]

        return self._finish("confirm", result, after={"status": BookingStatus.CONFIRMED.value})

    async def bulk_cancel(self, booking_ids: Sequence[UUID], reason: Optional[str] = None) -> BulkResult:
        """Cancel bookings and give their spots back, one release per schedule."""
        booking_ids = _unique(booking_ids)
        if not booking_ids:
            return BulkResult()

        rows = await self._fetch(booking_ids)
        eligible, result = self._partition(booking_ids, rows, booking_state.CANCEL)

        released: Dict[UUID, int] = defaultdict(int)
        if eligible:
            try:
                claimed = await self._claim_each(
                    eligible,
                    booking_state.CANCEL,
                    result,
                    status=BookingStatus.CANCELLED.value,
                    cancelled_at=as_utc(self._clock()),
                    cancellation_reason=reason,
                )
                # Only rows this call flipped give spots back
                for booking in claimed:
                    if booking.schedule_id is not None:
                        released[booking.schedule_id] += booking.total_participants
                for schedule_id, guests in released.items():
                    await self.ledger.release(schedule_id, guests)
                await self.db.commit()
            except Exception:
                await self.db.rollback()
                raise
            result.succeeded_ids = [b.id for b in claimed]
            metrics_collector.record_booking_cancelled(len(claimed))

            if self.guide_recalculator is not None:
                for schedule_id in released:
                    self.guide_recalculator.request_recalculation(schedule_id)

        return self._finish(
            "cancel",
            result,
            reason=reason,
            released={str(k): v for k, v in released.items()},
        )

    async def bulk_update_payment_status(
        self,
        booking_ids: Sequence[UUID],
        payment_status: PaymentStatus,
    ) -> BulkResult:
        """Set the payment status on every booking that exists."""
        booking_ids = _unique(booking_ids)
        if not booking_ids:
            return BulkResult()

        rows = await self._fetch(booking_ids)
        eligible, result = self._partition(booking_ids, rows, None)

        if eligible:
            ids = [b.id for b in eligible]
            try:
                await self.db.execute(
                    update(Booking)
                    .where(
                        Booking.organization_id == self.organization_id,
                        Booking.id.in_(ids),
                    )
                    .values(payment_status=payment_status.value)
                    .execution_options(synchronize_session=False)
                )
                await self.db.commit()
            except Exception:
                await self.db.rollback()
                raise
            result.succeeded_ids = ids

        return self._finish("payment_status", result, after={"payment_status": payment_status.value})

    async def _reschedule_one(
        self,
        factory: async_sessionmaker[AsyncSession],
        booking_id: UUID,
        target: RescheduleTarget,
    ) -> None:
        async with factory() as session:
            service = BookingCommandService(
                session,
                self.ctx,
                guide_recalculator=self.guide_recalculator,
                clock=self._clock,
            )
            await service.reschedule_booking(booking_id, target)

    async def bulk_reschedule(self, booking_ids: Sequence[UUID], target: RescheduleTarget) -> BulkResult:
        """
        Move every booking to ``target``.

        Items run concurrently, each in its own transaction. A failure is
        recorded against its item and never stops the others.
        """
        booking_ids = _unique(booking_ids)
        if not booking_ids:
            return BulkResult()

        factory = self.session_factory or session_factory_for(self.db)
        outcomes = await asyncio.gather(
            *(self._reschedule_one(factory, booking_id, target) for booking_id in booking_ids),
            return_exceptions=True,
        )

        result = BulkResult()
        for booking_id, outcome in zip(booking_ids, outcomes):
            if outcome is None:
                result.succeeded_ids.append(booking_id)
            elif isinstance(outcome, NotFoundError) and outcome.resource_type == "booking":
                result.errors.append(BulkError(id=booking_id, error=BOOKING_NOT_FOUND))
            elif isinstance(outcome, Exception):
                if not isinstance(outcome, ValidationError):
                    logger.error(
                        "Bulk reschedule item failed",
                        exc_info=outcome,
                        extra={"booking_id": str(booking_id)}
                    )
                result.errors.append(BulkError(id=booking_id, error=error_message(outcome)))
            else:
                raise outcome

        target_fields = {
            "schedule_id": str(target.schedule_id) if target.schedule_id else None,
            "tour_id": str(target.tour_id) if target.tour_id else None,
            "booking_date": target.booking_date.isoformat() if target.booking_date else None,
            "booking_time": target.booking_time,
        }
        return self._finish("reschedule", result, after=target_fields)
