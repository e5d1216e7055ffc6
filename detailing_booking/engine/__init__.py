from detailing_booking.engine.calendar import SlotCalendar
from detailing_booking.engine.cancellation import CancellationPolicyEngine
from detailing_booking.engine.ledger import BookingLedger
from detailing_booking.engine.pricing import PricingEngine
from detailing_booking.engine.reschedule import RescheduleWorkflow

__all__ = [
    "PricingEngine",
    "SlotCalendar",
    "BookingLedger",
    "CancellationPolicyEngine",
    "RescheduleWorkflow",
]
