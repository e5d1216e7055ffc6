"""
In-memory persistence client for slots, bookings and reschedule requests.

The store is constructed explicitly and handed to every engine component, so
its lifecycle follows the service process rather than a module global. All
reads return copies; callers persist changes through ``save_*``.

The conditional writes (``reserve_slot``, ``insert_pending_request`` and the
version-checked ``save_booking``) check and write under the same lock, which
is what keeps slot reservation, the one-pending-request rule and booking
updates safe under concurrent callers.
"""

import logging
import threading
from datetime import date, time
from typing import Iterable, Optional

from detailing_booking.schemas.booking_schema import Booking
from detailing_booking.schemas.reschedule_schema import RescheduleRequest, RescheduleStatus
from detailing_booking.schemas.slot_schema import TimeSlot

logger = logging.getLogger(__name__)


class BookingStore:
    """Thread-safe record store shared by the calendar, ledger and workflow."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._slots: dict[str, TimeSlot] = {}
        self._bookings: dict[str, Booking] = {}
        self._requests: dict[str, RescheduleRequest] = {}

    # ------------------------------------------------------------------ #
    # Slots
    # ------------------------------------------------------------------ #

    def add_slot(self, slot: TimeSlot) -> TimeSlot:
        with self._lock:
            if slot.id in self._slots:
                raise ValueError(f"Slot {slot.id} already exists")
            self._slots[slot.id] = slot.model_copy(deep=True)
        return slot.model_copy(deep=True)

    def get_slot(self, slot_id: str) -> Optional[TimeSlot]:
        with self._lock:
            slot = self._slots.get(slot_id)
            return slot.model_copy(deep=True) if slot else None

    def find_slot(self, slot_date: date, start_time: time) -> Optional[TimeSlot]:
        with self._lock:
            for slot in self._slots.values():
                if slot.slot_date == slot_date and slot.start_time == start_time:
                    return slot.model_copy(deep=True)
        return None

    def list_slots(self, start_date: date, end_date: date) -> list[TimeSlot]:
        """Slots between two dates inclusive, ordered by date then start time."""
        with self._lock:
            slots = [
                s.model_copy(deep=True)
                for s in self._slots.values()
                if start_date <= s.slot_date <= end_date
            ]
        return sorted(slots, key=lambda s: (s.slot_date, s.start_time))

    def set_slot_open(self, slot_id: str, is_open: bool) -> Optional[TimeSlot]:
        with self._lock:
            slot = self._slots.get(slot_id)
            if slot is None:
                return None
            slot.is_open = is_open
            return slot.model_copy(deep=True)

    def reserve_slot(
        self, slot_id: str, booking_id: str, reclaimable: Iterable[str] = ()
    ) -> bool:
        """Mark the slot as held by ``booking_id`` only if it is open and unreserved.

        A slot whose holder is a stored booking in one of ``reclaimable``
        statuses counts as unreserved: its flag outlived the booking.
        """
        with self._lock:
            slot = self._slots.get(slot_id)
            if slot is None or not slot.is_open:
                return False
            if slot.reserved_by is not None:
                if not self._holder_in(slot, set(reclaimable)):
                    return False
                logger.warning(
                    "Slot %s reclaimed from inactive booking %s", slot_id, slot.reserved_by
                )
            slot.reserved_by = booking_id
            return True

    def _holder_in(self, slot: TimeSlot, statuses: set) -> bool:
        holder = self._bookings.get(slot.reserved_by) if slot.reserved_by else None
        return holder is not None and holder.status in statuses

    def slots_with_holder_in(self, statuses: Iterable[str]) -> set[str]:
        """Slot ids whose ``reserved_by`` names a booking currently in one of ``statuses``."""
        wanted = set(statuses)
        with self._lock:
            return {s.id for s in self._slots.values() if self._holder_in(s, wanted)}

    def release_slot(self, slot_id: str, booking_id: Optional[str] = None) -> bool:
        """Clear the slot's holder. Returns False when there was nothing to release.

        When ``booking_id`` is given, the slot is only released if that
        booking is the current holder.
        """
        with self._lock:
            slot = self._slots.get(slot_id)
            if slot is None or slot.reserved_by is None:
                return False
            if booking_id is not None and slot.reserved_by != booking_id:
                return False
            slot.reserved_by = None
            return True

    # ------------------------------------------------------------------ #
    # Bookings
    # ------------------------------------------------------------------ #

    def insert_booking(self, booking: Booking) -> Booking:
        with self._lock:
            if booking.id in self._bookings:
                raise ValueError(f"Booking {booking.id} already exists")
            self._bookings[booking.id] = booking.model_copy(deep=True)
        return booking.model_copy(deep=True)

    def get_booking(self, booking_id: str) -> Optional[Booking]:
        with self._lock:
            booking = self._bookings.get(booking_id)
            return booking.model_copy(deep=True) if booking else None

    def save_booking(self, booking: Booking) -> Optional[Booking]:
        """Write ``booking`` back only if nobody saved it since it was read.

        Returns the stored copy with its version bumped, or None when the
        stored version no longer matches ``booking.version``.
        """
        with self._lock:
            current = self._bookings.get(booking.id)
            if current is None:
                raise KeyError(booking.id)
            if current.version != booking.version:
                logger.info(
                    "Stale write to booking %s refused (version %d, stored %d)",
                    booking.id, booking.version, current.version,
                )
                return None
            stored = booking.model_copy(deep=True, update={"version": booking.version + 1})
            self._bookings[booking.id] = stored
            return stored.model_copy(deep=True)

    def list_bookings(self, customer_id: Optional[str] = None) -> list[Booking]:
        with self._lock:
            bookings = [
                b.model_copy(deep=True)
                for b in self._bookings.values()
                if customer_id is None or b.customer_id == customer_id
            ]
        return sorted(bookings, key=lambda b: b.created_at)

    def slots_held_by(self, statuses: Iterable[str]) -> set[str]:
        """Slot ids referenced by bookings currently in one of ``statuses``."""
        wanted = set(statuses)
        with self._lock:
            return {b.slot_id for b in self._bookings.values() if b.status in wanted}

    # ------------------------------------------------------------------ #
    # Reschedule requests
    # ------------------------------------------------------------------ #

    def insert_pending_request(self, request: RescheduleRequest) -> bool:
        """Insert a pending request unless the booking already has one."""
        with self._lock:
            for existing in self._requests.values():
                if (
                    existing.booking_id == request.booking_id
                    and existing.status == RescheduleStatus.PENDING
                ):
                    logger.debug(
                        "Booking %s already has pending request %s",
                        request.booking_id, existing.id,
                    )
                    return False
            self._requests[request.id] = request.model_copy(deep=True)
            return True

    def get_request(self, request_id: str) -> Optional[RescheduleRequest]:
        with self._lock:
            request = self._requests.get(request_id)
            return request.model_copy(deep=True) if request else None

    def save_request(self, request: RescheduleRequest) -> RescheduleRequest:
        with self._lock:
            if request.id not in self._requests:
                raise KeyError(request.id)
            self._requests[request.id] = request.model_copy(deep=True)
        return request.model_copy(deep=True)

    def list_requests(
        self,
        booking_id: Optional[str] = None,
        status: Optional[RescheduleStatus] = None,
    ) -> list[RescheduleRequest]:
        with self._lock:
            requests = [
                r.model_copy(deep=True)
                for r in self._requests.values()
                if (booking_id is None or r.booking_id == booking_id)
                and (status is None or r.status == status)
            ]
        return sorted(requests, key=lambda r: r.created_at)
