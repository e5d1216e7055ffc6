"""
Cancellation policy: refund eligibility depends only on time remaining.

A booking cancelled at least ``refund_threshold_hours`` (24 by default)
before its start is refunded in full; later than that, nothing is refunded
and the customer must acknowledge this before the cancellation goes through.
``check_policy`` and ``cancel`` both go through ``evaluate`` so the preview
shown to the customer and the executed cancellation never disagree.
"""

import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional

from detailing_booking.config import PolicyConfig, settings
from detailing_booking.engine.ledger import BookingLedger
from detailing_booking.engine.state_machine import CHANGEABLE_STATUSES, check_transition
from detailing_booking.errors import PolicyRejected
from detailing_booking.schemas.booking_schema import Booking, BookingStatus
from detailing_booking.schemas.policy_schema import CancellationPolicy, CancellationResult

logger = logging.getLogger(__name__)

NO_REFUND = Decimal("0.00")


class CancellationPolicyEngine:
    """Evaluates the refund policy and executes customer cancellations."""

    def __init__(self, ledger: BookingLedger, config: Optional[PolicyConfig] = None) -> None:
        self._ledger = ledger
        self.config = config or settings.policy

    @property
    def threshold(self) -> timedelta:
        return timedelta(hours=self.config.refund_threshold_hours)

    def evaluate(self, booking: Booking, now: datetime) -> CancellationPolicy:
        """Pure evaluation of the policy for ``booking`` at instant ``now``."""
        until = booking.scheduled_start - now
        hours = max(0.0, until.total_seconds() / 3600)
        refund_eligible = until >= self.threshold
        started = until <= timedelta(0)
        cancellable_status = booking.status in CHANGEABLE_STATUSES

        warning = None
        if not cancellable_status:
            warning = f"Cannot cancel booking with status: {booking.status.value}"
        elif started:
            warning = "This appointment has already started or passed."
        elif not refund_eligible:
            warning = (
                f"This appointment is in {hours:.1f} hours. Cancellation within "
                f"{self.config.refund_threshold_hours} hours means no refund will be provided."
            )

        return CancellationPolicy(
            refund_eligible=refund_eligible,
            refund_amount=booking.price.total if refund_eligible else NO_REFUND,
            hours_until_appointment=round(hours, 2),
            can_cancel=cancellable_status and not started,
            warning=warning,
        )

    def check_policy(
        self, booking_id: str, now: datetime, customer_id: Optional[str] = None
    ) -> CancellationPolicy:
        return self.evaluate(self._load(booking_id, customer_id), now)

    def cancel(
        self,
        booking_id: str,
        reason: str,
        acknowledge_no_refund: bool,
        now: datetime,
        customer_id: Optional[str] = None,
    ) -> CancellationResult:
        """
        Cancel a booking under the refund policy.

        Raises:
            NotFound / Forbidden: If the booking is missing or not the caller's.
            InvalidTransition: If the booking is not pending or confirmed.
            PolicyRejected: If the appointment has started, or no refund is due
                and the caller has not acknowledged that.
        """
        booking = self._load(booking_id, customer_id)
        check_transition(booking.status, BookingStatus.CANCELLED)
        policy = self.evaluate(booking, now)

        if not policy.can_cancel:
            raise PolicyRejected(
                policy.warning or "This booking cannot be cancelled.",
                code="appointment_started",
                details={"hours_until_appointment": policy.hours_until_appointment},
            )
        if not policy.refund_eligible and not acknowledge_no_refund:
            logger.info(
                "Cancellation of %s needs no-refund acknowledgement (%.2fh to go)",
                booking.reference, policy.hours_until_appointment,
            )
            raise PolicyRejected(
                f"Cancellation within {self.config.refund_threshold_hours} hours "
                "requires acknowledgment of the no refund policy.",
                details={
                    "hours_until_appointment": policy.hours_until_appointment,
                    "refund_eligible": False,
                },
            )

        cancelled = self._ledger.cancel(
            booking.id, reason, policy.refund_amount, now, version=booking.version
        )
        logger.info(
            "Booking %s cancelled by customer, refund %s", cancelled.reference, policy.refund_amount
        )
        return CancellationResult(
            booking=cancelled, policy=policy, refund_amount=policy.refund_amount
        )

    def _load(self, booking_id: str, customer_id: Optional[str]) -> Booking:
        if customer_id is None:
            return self._ledger.get(booking_id)
        return self._ledger.get_for_customer(booking_id, customer_id)
