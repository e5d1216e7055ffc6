"""
Slot calendar: the single authority on which slots can be booked.

Availability is never read from one flag alone. A slot is bookable when it is
open, starts after ``now`` (plus the booking buffer), no active booking
references it, and it has no holder or its holder is a cancelled or completed
booking. The last two checks reconcile a holder flag that went stale in either
direction, e.g. a booking cancelled without its slot being released.
"""

import logging
import uuid
from datetime import date, datetime, time, timedelta
from typing import Iterable, Optional

from detailing_booking.config import CalendarConfig, settings
from detailing_booking.engine.state_machine import ACTIVE_STATUSES, TERMINAL_STATUSES
from detailing_booking.errors import NotFound, SlotUnavailable
from detailing_booking.schemas.slot_schema import DailyCapacity, TimeSlot
from detailing_booking.store import BookingStore
from detailing_booking.utils import parse_time

logger = logging.getLogger(__name__)


class SlotCalendar:
    """Answers availability queries and performs atomic reserve / release."""

    def __init__(self, store: BookingStore, config: Optional[CalendarConfig] = None) -> None:
        self._store = store
        self.config = config or settings.calendar

    # ------------------------------------------------------------------ #
    # Availability
    # ------------------------------------------------------------------ #

    def _earliest_bookable(self, now: datetime) -> datetime:
        return now + timedelta(minutes=self.config.booking_buffer_minutes)

    def _is_future(self, slot: TimeSlot, now: datetime) -> bool:
        """Compare date first, then time of day, so same-day past slots are excluded."""
        earliest = self._earliest_bookable(now)
        if slot.slot_date != earliest.date():
            return slot.slot_date > earliest.date()
        return slot.start_time >= earliest.time()

    def _bookable(
        self, slot: TimeSlot, now: datetime, held: set[str], stale: set[str]
    ) -> bool:
        return (
            slot.is_open
            and (slot.reserved_by is None or slot.id in stale)
            and slot.id not in held
            and self._is_future(slot, now)
        )

    def _occupancy(self) -> tuple[set[str], set[str]]:
        """Slots referenced by active bookings, and slots flagged by inactive ones."""
        return (
            self._store.slots_held_by(ACTIVE_STATUSES),
            self._store.slots_with_holder_in(TERMINAL_STATUSES),
        )

    def list_available(self, start_date: date, end_date: date, now: datetime) -> list[TimeSlot]:
        """Open, unreserved, future slots between two dates inclusive."""
        held, stale = self._occupancy()
        slots = [
            slot
            for slot in self._store.list_slots(start_date, end_date)
            if self._bookable(slot, now, held, stale)
        ]
        logger.debug(
            "%d slot(s) available between %s and %s", len(slots), start_date, end_date
        )
        return slots

    def is_available(self, slot_id: str, now: datetime) -> bool:
        slot = self._store.get_slot(slot_id)
        if slot is None:
            return False
        return self._bookable(slot, now, *self._occupancy())

    def get_slot(self, slot_id: str) -> TimeSlot:
        slot = self._store.get_slot(slot_id)
        if slot is None:
            raise NotFound(f"Time slot {slot_id} not found.")
        return slot

    def find_slot(self, slot_date: date, start_time: time) -> Optional[TimeSlot]:
        return self._store.find_slot(slot_date, start_time)

    def daily_capacity(self, slot_date: date, now: datetime) -> DailyCapacity:
        """Capacity derived from the day's open TimeSlot rows."""
        slots = [s for s in self._store.list_slots(slot_date, slot_date) if s.is_open]
        held, stale = self._occupancy()
        reserved = sum(
            1 for s in slots
            if s.id in held or (s.reserved_by is not None and s.id not in stale)
        )
        available = sum(1 for s in slots if self._bookable(s, now, held, stale))
        return DailyCapacity(
            slot_date=slot_date, total=len(slots), reserved=reserved, available=available
        )

    # ------------------------------------------------------------------ #
    # Reservation
    # ------------------------------------------------------------------ #

    def reserve(self, slot_id: str, booking_id: str) -> TimeSlot:
        """
        Atomically reserve a slot for a booking.

        Raises:
            SlotUnavailable: If the slot is unknown, closed, or already held.
                Fails immediately, never waits. A holder flag left behind by
                a cancelled or completed booking does not count as held.
        """
        if slot_id in self._store.slots_held_by(ACTIVE_STATUSES):
            raise SlotUnavailable(
                f"Time slot {slot_id} is already booked.", details={"slot_id": slot_id}
            )
        if not self._store.reserve_slot(slot_id, booking_id, reclaimable=TERMINAL_STATUSES):
            logger.info("Reservation of slot %s for %s refused", slot_id, booking_id)
            raise SlotUnavailable(
                f"Time slot {slot_id} is no longer available.", details={"slot_id": slot_id}
            )
        logger.info("Slot %s reserved for booking %s", slot_id, booking_id)
        return self._store.get_slot(slot_id)

    def release(self, slot_id: str, booking_id: Optional[str] = None) -> bool:
        """Release a slot. Releasing an unreserved slot is a no-op."""
        released = self._store.release_slot(slot_id, booking_id)
        if released:
            logger.info("Slot %s released", slot_id)
        else:
            logger.debug("Slot %s was not held; release is a no-op", slot_id)
        return released

    # ------------------------------------------------------------------ #
    # Seeding and operations flags
    # ------------------------------------------------------------------ #

    def add_slot(
        self,
        slot_date: date,
        start_time: time,
        duration_minutes: Optional[int] = None,
        is_open: bool = True,
    ) -> TimeSlot:
        existing = self._store.find_slot(slot_date, start_time)
        if existing is not None:
            return existing
        slot = TimeSlot(
            id=f"slot-{uuid.uuid4().hex[:10]}",
            slot_date=slot_date,
            start_time=start_time,
            duration_minutes=duration_minutes or self.config.slot_duration_minutes,
            is_open=is_open,
        )
        return self._store.add_slot(slot)

    def seed_day(
        self,
        slot_date: date,
        start_times: Optional[Iterable[time]] = None,
        duration_minutes: Optional[int] = None,
    ) -> list[TimeSlot]:
        """Create the day's slots from the given times or the configured template.

        Slots that already exist for a date and time are returned unchanged.
        """
        if start_times is None:
            start_times = [parse_time(t) for t in self.config.default_start_times]
        slots = [
            self.add_slot(slot_date, start, duration_minutes)
            for start in sorted(start_times)
        ]
        logger.info("Seeded %d slot(s) for %s", len(slots), slot_date)
        return slots

    def open_slot(self, slot_id: str) -> TimeSlot:
        return self._set_open(slot_id, True)

    def close_slot(self, slot_id: str) -> TimeSlot:
        """Stop offering a slot. A booking already holding it keeps it."""
        return self._set_open(slot_id, False)

    def _set_open(self, slot_id: str, is_open: bool) -> TimeSlot:
        slot = self._store.set_slot_open(slot_id, is_open)
        if slot is None:
            raise NotFound(f"Time slot {slot_id} not found.")
        logger.info("Slot %s %s", slot_id, "opened" if is_open else "closed")
        return slot
