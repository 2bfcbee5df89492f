"""Booking status state machine."""

from typing import Callable, Dict, FrozenSet

from ..core.exceptions import ValidationError
from ..models.booking import BookingStatus

CONFIRM = "confirm"
CANCEL = "cancel"
MARK_NO_SHOW = "mark_no_show"
COMPLETE = "complete"
RESCHEDULE = "reschedule"

# Source statuses each operation may start from
ALLOWED_SOURCES: Dict[str, FrozenSet[BookingStatus]] = {
    CONFIRM: frozenset({BookingStatus.PENDING}),
    CANCEL: frozenset({BookingStatus.PENDING, BookingStatus.CONFIRMED, BookingStatus.NO_SHOW}),
    MARK_NO_SHOW: frozenset({BookingStatus.CONFIRMED}),
    COMPLETE: frozenset({BookingStatus.CONFIRMED}),
    RESCHEDULE: frozenset({BookingStatus.PENDING, BookingStatus.CONFIRMED, BookingStatus.NO_SHOW}),
}

# Status each operation moves the booking to; reschedule keeps the status
TARGET_STATUS: Dict[str, BookingStatus] = {
    CONFIRM: BookingStatus.CONFIRMED,
    CANCEL: BookingStatus.CANCELLED,
    MARK_NO_SHOW: BookingStatus.NO_SHOW,
    COMPLETE: BookingStatus.COMPLETED,
}


def _cancel_message(status: str) -> str:
    if status == BookingStatus.CANCELLED:
        return "Booking is already cancelled"
    return "Cannot cancel a completed booking"


_REJECTION_MESSAGES: Dict[str, Callable[[str], str]] = {
    CONFIRM: lambda s: f'Cannot confirm booking with status "{s}"',
    CANCEL: _cancel_message,
    MARK_NO_SHOW: lambda s: f'Cannot mark as no-show. Current status: "{s}"',
    COMPLETE: lambda s: f'Cannot complete booking with status "{s}"',
    RESCHEDULE: lambda s: f"Cannot reschedule a {s} booking",
}


def _status_value(status) -> str:
    return status.value if isinstance(status, BookingStatus) else str(status)


def is_allowed(operation: str, status) -> bool:
    """Return True when ``operation`` may run on a booking in ``status``."""
    try:
        allowed = ALLOWED_SOURCES[operation]
    except KeyError:
        raise ValueError(f"Unknown booking operation: {operation}")
    return _status_value(status) in {s.value for s in allowed}


def ensure_transition(operation: str, status) -> None:
    """
    Check that ``operation`` may run on a booking in ``status``.

    Raises:
        ValidationError: naming the current status when the move is illegal
        ValueError: for an unknown operation name
    """
    if not is_allowed(operation, status):
        raise ValidationError(_REJECTION_MESSAGES[operation](_status_value(status)))
