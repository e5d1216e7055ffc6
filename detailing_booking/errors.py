"""
Error taxonomy for the booking engine.

Every rejection carries a stable machine-readable ``code`` and a
human-readable ``message``. Errors are raised at the seam where the problem
is detected and surfaced as-is by the service facade; the core never
retries.
"""

from typing import Any, Optional


class BookingError(Exception):
    """Base exception for all booking engine errors."""

    code = "booking_error"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(BookingError):
    """Malformed input, rejected before any state change."""

    code = "validation_error"


class SlotUnavailable(BookingError):
    """The slot lost a reservation race or is not open. Re-offer availability."""

    code = "slot_unavailable"


class InvalidTransition(BookingError):
    """A booking status change outside the allowed-edge table."""

    code = "invalid_transition"


class PolicyRejected(BookingError):
    """Cancellation refused by policy until the caller re-prompts the user."""

    code = "refund_acknowledgement_required"


class RescheduleRejected(BookingError):
    """A reschedule request failed one of its preconditions."""

    code = "reschedule_rejected"


class NotFound(BookingError):
    code = "not_found"


class Forbidden(BookingError):
    code = "forbidden"


class ConcurrentUpdate(BookingError):
    """The booking changed between read and write. Reload and retry the action."""

    code = "concurrent_update"
