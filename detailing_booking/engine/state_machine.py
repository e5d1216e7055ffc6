"""
Booking status state machine.

    pending            -> confirmed
    pending|confirmed  -> in_progress
    in_progress        -> completed
    pending|confirmed  -> cancelled

Every edge is listed explicitly; anything not in the table, including any
move out of ``completed`` or ``cancelled``, is rejected.

Usage:
    check_transition(BookingStatus.PENDING, BookingStatus.CONFIRMED)  # ok
    check_transition(BookingStatus.COMPLETED, BookingStatus.PENDING)  # raises
"""

import logging
from dataclasses import dataclass

from detailing_booking.errors import InvalidTransition
from detailing_booking.schemas.booking_schema import BookingStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Transition:
    """A single valid status transition."""
    from_status: BookingStatus
    to_status: BookingStatus


TRANSITIONS: list[Transition] = [
    Transition(BookingStatus.PENDING, BookingStatus.CONFIRMED),
    Transition(BookingStatus.PENDING, BookingStatus.IN_PROGRESS),
    Transition(BookingStatus.CONFIRMED, BookingStatus.IN_PROGRESS),
    Transition(BookingStatus.IN_PROGRESS, BookingStatus.COMPLETED),
    Transition(BookingStatus.PENDING, BookingStatus.CANCELLED),
    Transition(BookingStatus.CONFIRMED, BookingStatus.CANCELLED),
]

INITIAL_STATUS = BookingStatus.PENDING
TERMINAL_STATUSES = frozenset({BookingStatus.COMPLETED, BookingStatus.CANCELLED})
# Statuses whose booking holds a reserved slot.
ACTIVE_STATUSES = frozenset(
    {BookingStatus.PENDING, BookingStatus.CONFIRMED, BookingStatus.IN_PROGRESS}
)
# Statuses from which a customer may cancel or reschedule.
CHANGEABLE_STATUSES = frozenset({BookingStatus.PENDING, BookingStatus.CONFIRMED})

STATUS_LABELS: dict[BookingStatus, str] = {
    BookingStatus.PENDING: "Pending Review",
    BookingStatus.CONFIRMED: "Confirmed",
    BookingStatus.IN_PROGRESS: "Service In Progress",
    BookingStatus.COMPLETED: "Completed",
    BookingStatus.CANCELLED: "Cancelled",
}


def is_valid_transition(from_status: BookingStatus, to_status: BookingStatus) -> bool:
    return any(
        t.from_status == from_status and t.to_status == to_status for t in TRANSITIONS
    )


def valid_next_statuses(current: BookingStatus) -> list[BookingStatus]:
    """Return all statuses reachable in one step from ``current``."""
    return [t.to_status for t in TRANSITIONS if t.from_status == current]


def is_terminal(status: BookingStatus) -> bool:
    return status in TERMINAL_STATUSES


def status_label(status: BookingStatus) -> str:
    return STATUS_LABELS.get(status, status.value)


def check_transition(from_status: BookingStatus, to_status: BookingStatus) -> None:
    """
    Validate a status change against the transition table.

    Raises:
        InvalidTransition: If the edge is not allowed.
    """
    from_status = BookingStatus(from_status)
    to_status = BookingStatus(to_status)
    if is_valid_transition(from_status, to_status):
        return

    if is_terminal(from_status):
        message = f"Booking is {from_status.value}; no further status changes are allowed."
    else:
        valid = [s.value for s in valid_next_statuses(from_status)]
        message = (
            f"Cannot transition from '{from_status.value}' to '{to_status.value}'. "
            f"Valid next statuses: {valid}"
        )
    logger.debug("Rejected transition %s -> %s", from_status.value, to_status.value)
    raise InvalidTransition(
        message,
        details={"from_status": from_status.value, "to_status": to_status.value},
    )
