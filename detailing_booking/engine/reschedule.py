"""
Reschedule workflow: customers ask, an admin decides.

A request never touches the booking. Only approval moves the booking onto
the requested slot, reserving the new slot and releasing the old one as a
single logical operation. A booking has at most one pending request.

Pending requests stay open until decided unless
``RESCHEDULE_PENDING_TTL_HOURS`` is set, in which case older ones are
expired, lazily on the next request for the same booking or in bulk via
``expire_stale``. When a booking is cancelled or completed its pending
request is rejected straight away.
"""

import logging
import uuid
from datetime import date, datetime, time, timedelta
from typing import Optional

from detailing_booking.config import PolicyConfig, settings
from detailing_booking.engine.calendar import SlotCalendar
from detailing_booking.engine.ledger import BookingLedger
from detailing_booking.engine.state_machine import CHANGEABLE_STATUSES, TERMINAL_STATUSES
from detailing_booking.errors import NotFound, RescheduleRejected
from detailing_booking.events import (
    BookingStatusChanged,
    EventBus,
    RescheduleApproved,
    RescheduleRequested,
)
from detailing_booking.events import RescheduleRejected as RescheduleRejectedEvent
from detailing_booking.schemas.booking_schema import BookingStatus
from detailing_booking.schemas.reschedule_schema import RescheduleRequest, RescheduleStatus
from detailing_booking.store import BookingStore

logger = logging.getLogger(__name__)

INACTIVE_BOOKING_RESPONSE = "Booking is no longer active"


class RescheduleWorkflow:
    """Creates reschedule requests and applies admin decisions on them."""

    def __init__(
        self,
        store: BookingStore,
        calendar: SlotCalendar,
        ledger: BookingLedger,
        events: Optional[EventBus] = None,
        config: Optional[PolicyConfig] = None,
    ) -> None:
        self._store = store
        self._calendar = calendar
        self._ledger = ledger
        self._events = events or EventBus()
        self.config = config or settings.policy
        self._events.subscribe(BookingStatusChanged, self._on_status_changed)

    # ------------------------------------------------------------------ #
    # Customer side
    # ------------------------------------------------------------------ #

    def request_reschedule(
        self,
        booking_id: str,
        customer_id: str,
        new_date: date,
        new_time: time,
        reason: str,
        now: datetime,
    ) -> RescheduleRequest:
        """
        Record a pending request to move a booking.

        Preconditions are checked in order and the first failure wins:
        ownership, reschedulable status, no pending request, slot available.

        Raises:
            NotFound / Forbidden: Booking missing or not the caller's.
            RescheduleRejected: Any other precondition failed.
        """
        booking = self._ledger.get_for_customer(booking_id, customer_id)

        if booking.status not in CHANGEABLE_STATUSES:
            raise RescheduleRejected(
                f"Booking cannot be rescheduled. Current status: {booking.status.value}",
                code="non_reschedulable_status",
                details={"status": booking.status.value},
            )

        self._expire_stale_for(booking_id, now)
        if self._store.list_requests(booking_id=booking_id, status=RescheduleStatus.PENDING):
            raise RescheduleRejected(
                "There is already a pending reschedule request for this booking.",
                code="reschedule_already_pending",
            )

        slot = self._calendar.find_slot(new_date, new_time)
        if slot is None or not self._calendar.is_available(slot.id, now):
            raise RescheduleRejected(
                "The requested time slot is not available. Please choose a different time.",
                code="requested_slot_unavailable",
                details={"date": new_date.isoformat(), "time": new_time.strftime("%H:%M")},
            )

        request = RescheduleRequest(
            id=str(uuid.uuid4()),
            booking_id=booking.id,
            customer_id=customer_id,
            requested_date=new_date,
            requested_time=new_time,
            slot_id=slot.id,
            reason=reason,
            created_at=now,
        )
        if not self._store.insert_pending_request(request):
            raise RescheduleRejected(
                "There is already a pending reschedule request for this booking.",
                code="reschedule_already_pending",
            )

        logger.info(
            "Reschedule requested for %s: %s %s", booking.reference, new_date, new_time
        )
        self._events.publish(RescheduleRequested(
            booking_id=booking.id,
            occurred_at=now,
            request_id=request.id,
            customer_id=customer_id,
            requested_date=new_date,
            requested_time=new_time,
            reason=reason,
        ))
        return request

    # ------------------------------------------------------------------ #
    # Admin side
    # ------------------------------------------------------------------ #

    def get_request(self, request_id: str) -> RescheduleRequest:
        request = self._store.get_request(request_id)
        if request is None:
            raise NotFound(f"Reschedule request {request_id} not found.")
        return request

    def list_pending(self) -> list[RescheduleRequest]:
        return self._store.list_requests(status=RescheduleStatus.PENDING)

    def approve(
        self, request_id: str, now: datetime, admin_response: Optional[str] = None
    ) -> RescheduleRequest:
        """
        Approve a pending request and move the booking onto the requested slot.

        If the slot has since been taken the request stays pending and
        ``SlotUnavailable`` propagates, so the admin can reject it instead.
        """
        request = self._pending_request(request_id, now)
        old_slot_id = self._ledger.get(request.booking_id).slot_id

        self._ledger.move_to_slot(request.booking_id, request.slot_id, now)

        request.status = RescheduleStatus.APPROVED
        request.responded_at = now
        request.admin_response = admin_response or "Reschedule request approved"
        request = self._store.save_request(request)

        logger.info("Reschedule request %s approved", request.id)
        self._events.publish(RescheduleApproved(
            booking_id=request.booking_id,
            occurred_at=now,
            request_id=request.id,
            old_slot_id=old_slot_id,
            new_slot_id=request.slot_id,
        ))
        return request

    def reject(
        self, request_id: str, now: datetime, admin_response: Optional[str] = None
    ) -> RescheduleRequest:
        """Reject a pending request. The booking keeps its slot."""
        return self._reject(self._pending_request(request_id, now), now, admin_response)

    def _reject(
        self, request: RescheduleRequest, now: datetime, admin_response: Optional[str]
    ) -> RescheduleRequest:
        request.status = RescheduleStatus.REJECTED
        request.responded_at = now
        request.admin_response = admin_response
        request = self._store.save_request(request)

        logger.info("Reschedule request %s rejected", request.id)
        self._events.publish(RescheduleRejectedEvent(
            booking_id=request.booking_id,
            occurred_at=now,
            request_id=request.id,
            admin_response=admin_response,
        ))
        return request

    def _on_status_changed(self, event: BookingStatusChanged) -> None:
        if BookingStatus(event.to_status) not in TERMINAL_STATUSES:
            return
        for request in self._store.list_requests(
            booking_id=event.booking_id, status=RescheduleStatus.PENDING
        ):
            logger.info(
                "Booking %s is %s; closing reschedule request %s",
                event.booking_id, event.to_status, request.id,
            )
            self._reject(request, event.occurred_at, INACTIVE_BOOKING_RESPONSE)

    # ------------------------------------------------------------------ #
    # Expiry
    # ------------------------------------------------------------------ #

    def _is_stale(self, request: RescheduleRequest, now: datetime) -> bool:
        ttl = self.config.reschedule_pending_ttl_hours
        if ttl <= 0:
            return False
        return now - request.created_at >= timedelta(hours=ttl)

    def _expire(self, request: RescheduleRequest, now: datetime) -> RescheduleRequest:
        request.status = RescheduleStatus.EXPIRED
        request.responded_at = now
        logger.info("Reschedule request %s expired", request.id)
        return self._store.save_request(request)

    def _expire_stale_for(self, booking_id: str, now: datetime) -> None:
        for request in self._store.list_requests(
            booking_id=booking_id, status=RescheduleStatus.PENDING
        ):
            if self._is_stale(request, now):
                self._expire(request, now)

    def expire_stale(self, now: datetime) -> list[RescheduleRequest]:
        """Expire every pending request older than the configured TTL."""
        return [
            self._expire(request, now)
            for request in self.list_pending()
            if self._is_stale(request, now)
        ]

    def _pending_request(self, request_id: str, now: datetime) -> RescheduleRequest:
        request = self.get_request(request_id)
        if request.status == RescheduleStatus.PENDING and self._is_stale(request, now):
            request = self._expire(request, now)
        if request.status != RescheduleStatus.PENDING:
            raise RescheduleRejected(
                f"Can only respond to pending reschedule requests (status: {request.status.value}).",
                code="request_not_pending",
                details={"status": request.status.value},
            )
        return request
