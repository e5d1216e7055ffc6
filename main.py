"""
Command-line entry point for the booking engine.

Runs against a fresh in-memory store, so it is a way to exercise the engine
without the web layer.

Usage:
    Price quote:  python main.py quote --service premium-detail --size M --distance 25
    Availability: python main.py slots --days 3
    Lifecycle:    python main.py demo
"""

import argparse
import logging
import sys
from datetime import date, datetime, timedelta

from detailing_booking.catalog import SERVICE_CATALOG, VEHICLE_SIZE_LABELS
from detailing_booking.config import settings
from detailing_booking.errors import BookingError, PolicyRejected
from detailing_booking.events import DomainEvent
from detailing_booking.logging_context import set_request_id
from detailing_booking.schemas.booking_schema import VehicleSize
from detailing_booking.service import BookingService, build_service

logger = logging.getLogger(__name__)


def _seed_days(service: BookingService, days: int) -> None:
    start = date.today() + timedelta(days=1)
    for offset in range(days):
        service.seed_slots({"slot_date": start + timedelta(days=offset)})


def _run_quote(service: BookingService, args: argparse.Namespace) -> None:
    breakdown = service.quote_price({
        "service": args.service,
        "vehicle": {"make": "Any", "model": "Any", "size": args.size},
        "address": {
            "address_line1": "Quote",
            "city": "London",
            "postcode": "SW9",
            "distance_miles": str(args.distance),
        },
    })
    sys.stdout.write(
        f"Service price:   £{breakdown.adjusted_price} "
        f"(£{breakdown.base_price} x {breakdown.vehicle_size_multiplier}, "
        f"{VEHICLE_SIZE_LABELS[breakdown.vehicle_size]} vehicle)\n"
        f"Travel surcharge: £{breakdown.distance_surcharge}\n"
        f"Total:           £{breakdown.total}\n"
    )


def _run_slots(service: BookingService, args: argparse.Namespace) -> None:
    _seed_days(service, args.days)
    start = date.today()
    slots = service.list_available_slots(
        {"start_date": start, "end_date": start + timedelta(days=args.days)}
    )
    for slot in slots:
        sys.stdout.write(f"{slot.starts_at:%a %d %b %H:%M}  {slot.id}\n")
    sys.stdout.write(f"{len(slots)} slot(s) available\n")


def _run_demo(service: BookingService) -> None:
    """Walk one booking through create, reschedule and cancellation."""
    service.events.subscribe(
        DomainEvent, lambda event: sys.stdout.write(f"  event: {event.name}\n")
    )
    _seed_days(service, 3)
    today = date.today()
    slots = service.list_available_slots(
        {"start_date": today, "end_date": today + timedelta(days=3)}
    )

    booking = service.create_booking({
        "customer_id": "demo-customer",
        "service": "premium-detail",
        "vehicle": {"make": "BMW", "model": "3 Series", "size": "M"},
        "address": {
            "address_line1": "1 High Street",
            "city": "Croydon",
            "postcode": "CR0 1AA",
            "distance_miles": "25",
        },
        "slot_id": slots[0].id,
    })
    sys.stdout.write(f"Created {booking.reference}: total £{booking.price.total}\n")

    service.transition_status({"booking_id": booking.id, "status": "confirmed"})
    request = service.request_reschedule({
        "booking_id": booking.id,
        "customer_id": "demo-customer",
        "new_date": slots[1].slot_date,
        "new_time": slots[1].start_time,
        "reason": "Work meeting moved",
    })
    service.approve_reschedule({"request_id": request.id})
    moved = service.get_booking(booking.id)
    sys.stdout.write(f"Rescheduled to {moved.scheduled_date} {moved.scheduled_time:%H:%M}\n")

    policy = service.check_cancellation_policy(booking.id, "demo-customer")
    sys.stdout.write(
        f"Cancellation policy: refund eligible={policy.refund_eligible}, "
        f"{policy.hours_until_appointment}h to go\n"
    )
    payload = {"booking_id": booking.id, "customer_id": "demo-customer", "reason": "Sold the car"}
    try:
        result = service.cancel_booking(payload)
    except PolicyRejected as exc:
        sys.stdout.write(f"Rejected ({exc.code}); acknowledging no refund\n")
        result = service.cancel_booking({**payload, "acknowledge_no_refund": True})
    sys.stdout.write(f"Cancelled, refund £{result.refund_amount}\n")


def main() -> None:
    parser = argparse.ArgumentParser(
        description=f"{settings.business.name} booking engine."
    )
    sub = parser.add_subparsers(dest="command", required=True)

    quote = sub.add_parser("quote", help="Price a service for a vehicle size and distance.")
    quote.add_argument("--service", choices=sorted(SERVICE_CATALOG), required=True)
    quote.add_argument("--size", choices=[s.value for s in VehicleSize], default="M")
    quote.add_argument("--distance", type=float, default=0.0, help="Miles from base.")

    slots = sub.add_parser("slots", help="Seed and list available slots.")
    slots.add_argument("--days", type=int, default=7)

    sub.add_parser("demo", help="Run one booking through its lifecycle.")

    args = parser.parse_args()
    set_request_id("CLI")
    service = build_service(clock=datetime.now)

    try:
        if args.command == "quote":
            _run_quote(service, args)
        elif args.command == "slots":
            _run_slots(service, args)
        else:
            _run_demo(service)
    except BookingError as exc:
        logger.error("%s: %s", exc.code, exc.message)
        sys.exit(1)


if __name__ == "__main__":
    main()
