"""
Booking ledger: owns booking records and their status transitions.

Creation prices the selection, reserves the slot and stores the booking as
one logical operation. If storing fails after the reservation succeeded, the
reservation is released before the error propagates, so no slot is ever held
by a booking that does not exist.

Every later write is conditional on the version that was read. When another
writer got there first the write is refused with ``ConcurrentUpdate`` before
any slot is released or any event is published.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from detailing_booking.config import BusinessConfig, settings
from detailing_booking.engine.calendar import SlotCalendar
from detailing_booking.engine.pricing import PricingEngine
from detailing_booking.engine.state_machine import (
    CHANGEABLE_STATUSES,
    INITIAL_STATUS,
    TERMINAL_STATUSES,
    check_transition,
    status_label,
    valid_next_statuses,
)
from detailing_booking.errors import (
    ConcurrentUpdate,
    Forbidden,
    InvalidTransition,
    NotFound,
    SlotUnavailable,
)
from detailing_booking.events import (
    BookingCancelled,
    BookingCreated,
    BookingStatusChanged,
    EventBus,
)
from detailing_booking.logging_context import get_request_logger
from detailing_booking.schemas.booking_schema import Booking, BookingStatus, CreateBookingInput
from detailing_booking.store import BookingStore

logger = get_request_logger(__name__)


class BookingLedger:
    """Creates bookings and moves them through the status lifecycle."""

    def __init__(
        self,
        store: BookingStore,
        calendar: SlotCalendar,
        pricing: PricingEngine,
        events: Optional[EventBus] = None,
        business: Optional[BusinessConfig] = None,
    ) -> None:
        self._store = store
        self._calendar = calendar
        self._pricing = pricing
        self._events = events or EventBus()
        self._business = business or settings.business

    # ------------------------------------------------------------------ #
    # Lookup
    # ------------------------------------------------------------------ #

    def get(self, booking_id: str) -> Booking:
        booking = self._store.get_booking(booking_id)
        if booking is None:
            raise NotFound(f"Booking {booking_id} not found.")
        return booking

    def get_for_customer(self, booking_id: str, customer_id: str) -> Booking:
        """Fetch a booking and check it belongs to ``customer_id``."""
        booking = self.get(booking_id)
        if booking.customer_id != customer_id:
            raise Forbidden(f"Booking {booking_id} does not belong to this customer.")
        return booking

    def list_for_customer(self, customer_id: str) -> list[Booking]:
        return self._store.list_bookings(customer_id=customer_id)

    def valid_next_statuses(self, booking_id: str) -> list[BookingStatus]:
        return valid_next_statuses(self.get(booking_id).status)

    def describe_status(self, booking_id: str) -> str:
        return status_label(self.get(booking_id).status)

    # ------------------------------------------------------------------ #
    # Creation
    # ------------------------------------------------------------------ #

    def _new_reference(self, now: datetime) -> str:
        return f"{self._business.reference_prefix}-{now:%Y%m%d}-{uuid.uuid4().hex[:6].upper()}"

    def create(self, request: CreateBookingInput, now: datetime) -> Booking:
        """
        Price, reserve and persist a new booking in status ``pending``.

        Raises:
            SlotUnavailable: If the slot is unknown, past, closed or already taken.
        """
        if not self._calendar.is_available(request.slot_id, now):
            raise SlotUnavailable(
                f"Time slot {request.slot_id} is not available.",
                details={"slot_id": request.slot_id},
            )

        price = self._pricing.price_booking(request.service, request.vehicle, request.address)
        booking_id = str(uuid.uuid4())
        slot = self._calendar.reserve(request.slot_id, booking_id)

        booking = Booking(
            id=booking_id,
            reference=self._new_reference(now),
            customer_id=request.customer_id,
            service=request.service,
            vehicle=request.vehicle,
            address=request.address,
            slot_id=slot.id,
            scheduled_date=slot.slot_date,
            scheduled_time=slot.start_time,
            status=INITIAL_STATUS,
            price=price,
            special_instructions=request.special_instructions,
            created_at=now,
        )
        try:
            booking = self._store.insert_booking(booking)
        except Exception:
            logger.error(
                "Storing booking %s failed; releasing slot %s", booking_id, slot.id
            )
            self._calendar.release(slot.id, booking_id)
            raise

        logger.info(
            "Booking created: %s for customer %s on %s at %s (total %s)",
            booking.reference, booking.customer_id,
            booking.scheduled_date, booking.scheduled_time, price.total,
        )
        self._events.publish(BookingCreated(
            booking_id=booking.id,
            occurred_at=now,
            reference=booking.reference,
            customer_id=booking.customer_id,
            scheduled_date=booking.scheduled_date,
            scheduled_time=booking.scheduled_time,
            total=price.total,
        ))
        return booking

    # ------------------------------------------------------------------ #
    # Status transitions
    # ------------------------------------------------------------------ #

    def transition(self, booking_id: str, target: BookingStatus, now: datetime) -> Booking:
        """
        Move a booking to ``target`` status.

        Raises:
            NotFound: If the booking does not exist.
            InvalidTransition: If the edge is not in the transition table.
        """
        target = BookingStatus(target)
        if target == BookingStatus.CANCELLED:
            return self.cancel(booking_id, reason=None, refund_amount=None, now=now)
        return self._apply_transition(self.get(booking_id), target, now)

    def cancel(
        self,
        booking_id: str,
        reason: Optional[str],
        refund_amount: Optional[Decimal],
        now: datetime,
        version: Optional[int] = None,
    ) -> Booking:
        """
        Cancel a booking, record the reason and refund, and free its slot.

        ``version`` is the version the caller based its decision on (e.g. the
        refund policy). If the booking has changed since, nothing is written.

        Raises:
            ConcurrentUpdate: If the booking was saved by someone else first.
        """
        booking = self.get(booking_id)
        if version is not None and booking.version != version:
            raise ConcurrentUpdate(
                f"Booking {booking_id} changed while it was being cancelled.",
                details={"expected_version": version, "current_version": booking.version},
            )
        booking.cancellation_reason = reason
        booking.refund_amount = refund_amount
        booking = self._apply_transition(booking, BookingStatus.CANCELLED, now)
        self._events.publish(BookingCancelled(
            booking_id=booking.id,
            occurred_at=now,
            reference=booking.reference,
            customer_id=booking.customer_id,
            reason=reason or "",
            refund_amount=refund_amount or Decimal("0"),
        ))
        return booking

    def _apply_transition(self, booking: Booking, target: BookingStatus, now: datetime) -> Booking:
        old_status = booking.status
        check_transition(old_status, target)

        booking.status = target
        if target == BookingStatus.CONFIRMED:
            booking.confirmed_at = now
        elif target == BookingStatus.IN_PROGRESS:
            booking.started_at = now
        elif target == BookingStatus.COMPLETED:
            booking.completed_at = now
        elif target == BookingStatus.CANCELLED:
            booking.cancelled_at = now

        saved = self._store.save_booking(booking)
        if saved is None:
            raise ConcurrentUpdate(
                f"Booking {booking.id} changed before it could be moved to {target.value}.",
                details={"from_status": old_status.value, "to_status": target.value},
            )
        booking = saved
        if target in TERMINAL_STATUSES:
            self._calendar.release(booking.slot_id, booking.id)

        logger.info(
            "Booking %s status changed: %s -> %s",
            booking.reference, old_status.value, target.value,
        )
        self._events.publish(BookingStatusChanged(
            booking_id=booking.id,
            occurred_at=now,
            from_status=old_status.value,
            to_status=target.value,
        ))
        return booking

    # ------------------------------------------------------------------ #
    # Slot moves
    # ------------------------------------------------------------------ #

    def move_to_slot(self, booking_id: str, new_slot_id: str, now: datetime) -> Booking:
        """
        Swap a booking onto a new slot: reserve new, store, release old.

        Raises:
            InvalidTransition: If the booking is no longer pending or confirmed.
            SlotUnavailable: If the new slot cannot be reserved.
        """
        booking = self.get(booking_id)
        if booking.status not in CHANGEABLE_STATUSES:
            raise InvalidTransition(
                f"Booking is {booking.status.value}; its slot can no longer be changed.",
                details={"from_status": booking.status.value},
            )
        if not self._calendar.is_available(new_slot_id, now):
            raise SlotUnavailable(
                f"Time slot {new_slot_id} is not available.",
                details={"slot_id": new_slot_id},
            )

        old_slot_id = booking.slot_id
        new_slot = self._calendar.reserve(new_slot_id, booking.id)
        booking.slot_id = new_slot.id
        booking.scheduled_date = new_slot.slot_date
        booking.scheduled_time = new_slot.start_time
        try:
            saved = self._store.save_booking(booking)
            if saved is None:
                raise ConcurrentUpdate(
                    f"Booking {booking_id} changed before it could be moved.",
                    details={"slot_id": new_slot.id},
                )
        except Exception:
            logger.error(
                "Moving booking %s failed; releasing slot %s", booking_id, new_slot.id
            )
            self._calendar.release(new_slot.id, booking_id)
            raise

        booking = saved
        self._calendar.release(old_slot_id, booking.id)
        logger.info(
            "Booking %s moved from slot %s to %s", booking.reference, old_slot_id, new_slot.id
        )
        return booking
