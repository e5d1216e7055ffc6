"""
Operation-shaped facade consumed by the web layer.

Each operation takes a raw, dict-shaped request body, validates it eagerly
into a pydantic input (``ValidationError`` on failure) and only then touches
the stateful components. ``build_service`` wires the store, engine
components and event bus explicitly; nothing here is a module global.

Usage:
    service = build_service()
    service.seed_slots({"slot_date": "2026-11-02"})
    booking = service.create_booking({...})
"""

from concurrent.futures import Executor
from datetime import date, datetime
from typing import Any, Callable, Optional, TypeVar, Union

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from detailing_booking.catalog import get_service
from detailing_booking.config import AppConfig, settings
from detailing_booking.engine.calendar import SlotCalendar
from detailing_booking.engine.cancellation import CancellationPolicyEngine
from detailing_booking.engine.ledger import BookingLedger
from detailing_booking.engine.pricing import PricingEngine
from detailing_booking.engine.reschedule import RescheduleWorkflow
from detailing_booking.errors import ValidationError
from detailing_booking.events import EventBus
from detailing_booking.logging_context import get_request_logger, new_request_id
from detailing_booking.schemas.booking_schema import (
    Booking,
    CreateBookingInput,
    PriceBreakdown,
    PriceQuoteInput,
    TransitionInput,
)
from detailing_booking.schemas.policy_schema import (
    CancelBookingInput,
    CancellationPolicy,
    CancellationResult,
)
from detailing_booking.schemas.reschedule_schema import (
    RescheduleDecisionInput,
    RescheduleInput,
    RescheduleRequest,
)
from detailing_booking.schemas.slot_schema import (
    DailyCapacity,
    SeedSlotsInput,
    SlotRangeQuery,
    TimeSlot,
)
from detailing_booking.store import BookingStore

logger = get_request_logger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)
Payload = Union[dict[str, Any], BaseModel]


def validate_input(model: type[ModelT], payload: Payload) -> ModelT:
    """Validate a request body into ``model``, translating pydantic errors."""
    if isinstance(payload, model):
        return payload
    if isinstance(payload, BaseModel):
        payload = payload.model_dump()
    try:
        return model.model_validate(payload)
    except PydanticValidationError as exc:
        errors = [
            {"field": ".".join(str(part) for part in err["loc"]), "message": err["msg"]}
            for err in exc.errors()
        ]
        fields = ", ".join(e["field"] or "body" for e in errors)
        raise ValidationError(
            f"Invalid request: check {fields}.", details={"errors": errors}
        ) from None


def _resolve_catalog_service(payload: Payload) -> Payload:
    """Allow ``service`` to be given as a catalog id instead of a full descriptor."""
    if isinstance(payload, dict) and isinstance(payload.get("service"), str):
        service = get_service(payload["service"])
        if service is None:
            raise ValidationError(
                f"Unknown service: {payload['service']}",
                details={"errors": [{"field": "service", "message": "unknown service id"}]},
            )
        payload = {**payload, "service": service}
    return payload


class BookingService:
    """Entry points for the booking UI and admin workflows."""

    def __init__(
        self,
        store: BookingStore,
        calendar: SlotCalendar,
        pricing: PricingEngine,
        ledger: BookingLedger,
        policy: CancellationPolicyEngine,
        reschedules: RescheduleWorkflow,
        events: EventBus,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.store = store
        self.calendar = calendar
        self.pricing = pricing
        self.ledger = ledger
        self.policy = policy
        self.reschedules = reschedules
        self.events = events
        self._clock = clock

    def now(self) -> datetime:
        return self._clock()

    # ------------------------------------------------------------------ #
    # Booking UI
    # ------------------------------------------------------------------ #

    def quote_price(self, payload: Payload) -> PriceBreakdown:
        new_request_id()
        request = validate_input(PriceQuoteInput, _resolve_catalog_service(payload))
        return self.pricing.price_booking(request.service, request.vehicle, request.address)

    def list_available_slots(self, payload: Payload) -> list[TimeSlot]:
        query = validate_input(SlotRangeQuery, payload)
        return self.calendar.list_available(query.start_date, query.end_date, self.now())

    def create_booking(self, payload: Payload) -> Booking:
        new_request_id()
        request = validate_input(CreateBookingInput, _resolve_catalog_service(payload))
        logger.info("createBooking for customer %s, slot %s", request.customer_id, request.slot_id)
        return self.ledger.create(request, self.now())

    def request_reschedule(self, payload: Payload) -> RescheduleRequest:
        new_request_id()
        request = validate_input(RescheduleInput, payload)
        logger.info("requestReschedule for booking %s", request.booking_id)
        return self.reschedules.request_reschedule(
            request.booking_id,
            request.customer_id,
            request.new_date,
            request.new_time,
            request.reason,
            self.now(),
        )

    def check_cancellation_policy(
        self, booking_id: str, customer_id: Optional[str] = None
    ) -> CancellationPolicy:
        new_request_id()
        return self.policy.check_policy(booking_id, self.now(), customer_id=customer_id)

    def cancel_booking(self, payload: Payload) -> CancellationResult:
        new_request_id()
        request = validate_input(CancelBookingInput, payload)
        logger.info("cancelBooking for booking %s", request.booking_id)
        return self.policy.cancel(
            request.booking_id,
            request.reason,
            request.acknowledge_no_refund,
            self.now(),
            customer_id=request.customer_id,
        )

    def get_booking(self, booking_id: str, customer_id: Optional[str] = None) -> Booking:
        if customer_id is None:
            return self.ledger.get(booking_id)
        return self.ledger.get_for_customer(booking_id, customer_id)

    # ------------------------------------------------------------------ #
    # Admin workflows
    # ------------------------------------------------------------------ #

    def approve_reschedule(self, payload: Payload) -> RescheduleRequest:
        new_request_id()
        decision = validate_input(RescheduleDecisionInput, payload)
        return self.reschedules.approve(
            decision.request_id, self.now(), admin_response=decision.admin_response
        )

    def reject_reschedule(self, payload: Payload) -> RescheduleRequest:
        new_request_id()
        decision = validate_input(RescheduleDecisionInput, payload)
        return self.reschedules.reject(
            decision.request_id, self.now(), admin_response=decision.admin_response
        )

    def expire_stale_reschedules(self) -> list[RescheduleRequest]:
        return self.reschedules.expire_stale(self.now())

    def transition_status(self, payload: Payload) -> Booking:
        new_request_id()
        request = validate_input(TransitionInput, payload)
        logger.info("transitionStatus %s -> %s", request.booking_id, request.status.value)
        return self.ledger.transition(request.booking_id, request.status, self.now())

    def seed_slots(self, payload: Payload) -> list[TimeSlot]:
        request = validate_input(SeedSlotsInput, payload)
        return self.calendar.seed_day(
            request.slot_date, request.start_times, request.duration_minutes
        )

    def open_slot(self, slot_id: str) -> TimeSlot:
        return self.calendar.open_slot(slot_id)

    def close_slot(self, slot_id: str) -> TimeSlot:
        return self.calendar.close_slot(slot_id)

    def daily_capacity(self, slot_date: date) -> DailyCapacity:
        return self.calendar.daily_capacity(slot_date, self.now())


def build_service(
    config: Optional[AppConfig] = None,
    clock: Callable[[], datetime] = datetime.now,
    event_executor: Optional[Executor] = None,
    store: Optional[BookingStore] = None,
) -> BookingService:
    """Construct a fully wired BookingService."""
    config = config or settings
    store = store or BookingStore()
    events = EventBus(executor=event_executor)
    calendar = SlotCalendar(store, config.calendar)
    pricing = PricingEngine(config.pricing, config.business)
    ledger = BookingLedger(store, calendar, pricing, events=events, business=config.business)
    policy = CancellationPolicyEngine(ledger, config.policy)
    reschedules = RescheduleWorkflow(store, calendar, ledger, events=events, config=config.policy)
    return BookingService(
        store=store,
        calendar=calendar,
        pricing=pricing,
        ledger=ledger,
        policy=policy,
        reschedules=reschedules,
        events=events,
        clock=clock,
    )
