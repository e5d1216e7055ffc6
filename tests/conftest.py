"""Shared test fixtures and helpers."""

from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Callable, Optional

import pytest

from detailing_booking.config import (
    AppConfig,
    BusinessConfig,
    CalendarConfig,
    PolicyConfig,
    PricingConfig,
)
from detailing_booking.events import DomainEvent
from detailing_booking.schemas.booking_schema import Booking
from detailing_booking.schemas.slot_schema import TimeSlot
from detailing_booking.service import BookingService, build_service

NOW = datetime(2026, 11, 2, 8, 0)
TOMORROW = date(2026, 11, 3)


class FakeClock:
    """Callable clock whose time only moves when told to."""

    def __init__(self, now: datetime) -> None:
        self.current = now

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current += timedelta(**kwargs)


def make_config(
    buffer_minutes: int = 0,
    reschedule_ttl_hours: int = 0,
) -> AppConfig:
    """Config with the business defaults pinned, independent of the environment."""
    return AppConfig(
        business=BusinessConfig(
            name="Test Detailing",
            base_postcode="SW9",
            base_latitude=51.4719,
            base_longitude=-0.1162,
            reference_prefix="L4D",
        ),
        pricing=PricingConfig(
            free_radius_miles=Decimal("17.5"),
            per_mile_rate=Decimal("0.50"),
            minimum_surcharge=Decimal("5.00"),
            maximum_surcharge=Decimal("25.00"),
        ),
        calendar=CalendarConfig(
            default_start_times=("09:00", "11:00", "13:00", "15:00"),
            slot_duration_minutes=120,
            booking_buffer_minutes=buffer_minutes,
        ),
        policy=PolicyConfig(
            refund_threshold_hours=24,
            reschedule_pending_ttl_hours=reschedule_ttl_hours,
        ),
        log_level="DEBUG",
    )


@pytest.fixture
def config() -> AppConfig:
    return make_config()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(NOW)


@pytest.fixture
def service(config, clock) -> BookingService:
    return build_service(config=config, clock=clock)


@pytest.fixture
def slots(service) -> list[TimeSlot]:
    """Today's and tomorrow's default slots: today 09:00 .. tomorrow 15:00."""
    return service.seed_slots({"slot_date": NOW.date()}) + service.seed_slots(
        {"slot_date": TOMORROW}
    )


@pytest.fixture
def recorded_events(service) -> list[DomainEvent]:
    """Every event the service publishes after this fixture is set up, in order."""
    events: list[DomainEvent] = []
    service.events.subscribe(DomainEvent, events.append)
    return events


def booking_payload(
    slot_id: str,
    customer_id: str = "cust-1",
    service: object = None,
    size: str = "M",
    distance: str = "25",
    special_instructions: str = "",
) -> dict:
    """Build a createBooking request body with sensible defaults."""
    return {
        "customer_id": customer_id,
        "service": service or {
            "id": "premium-detail",
            "name": "Premium Detail",
            "base_price": "100.00",
            "duration_minutes": 180,
        },
        "vehicle": {"make": "BMW", "model": "3 Series", "size": size},
        "address": {
            "address_line1": "1 High Street",
            "city": "Croydon",
            "postcode": "CR0 1AA",
            "distance_miles": distance,
        },
        "slot_id": slot_id,
        "special_instructions": special_instructions,
    }


def slot_at(slots: list[TimeSlot], day: date, hhmm: str) -> TimeSlot:
    wanted = time.fromisoformat(hhmm)
    return next(s for s in slots if s.slot_date == day and s.start_time == wanted)


def create_booking(
    service: BookingService,
    slot: TimeSlot,
    customer_id: str = "cust-1",
    status: Optional[str] = None,
) -> Booking:
    """Create a booking on ``slot`` and optionally move it to ``status``."""
    booking = service.create_booking(booking_payload(slot.id, customer_id=customer_id))
    path = {
        "confirmed": ["confirmed"],
        "in_progress": ["confirmed", "in_progress"],
        "completed": ["confirmed", "in_progress", "completed"],
        "cancelled": ["cancelled"],
    }.get(status or "", [])
    for step in path:
        booking = service.transition_status({"booking_id": booking.id, "status": step})
    return booking


def run_before_next_save(
    service: BookingService, monkeypatch, action: Callable[[], object]
) -> None:
    """Run ``action`` after the next booking write was prepared but before it lands.

    This reproduces a second caller committing between another caller's read
    and write of the same booking.
    """
    real_save = service.store.save_booking
    pending = [action]

    def save_booking(booking):
        if pending:
            pending.pop()()
        return real_save(booking)

    monkeypatch.setattr(service.store, "save_booking", save_booking)
