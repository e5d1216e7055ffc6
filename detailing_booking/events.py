"""
Domain events published by the booking engine.

Notification senders (email, SMS) subscribe to these events. Publishing
happens after the state change is stored, and a failing subscriber is logged
and skipped: delivery problems never roll back or block a booking.

Usage:
    bus = EventBus()
    bus.subscribe(BookingCreated, send_confirmation_email)
    bus.publish(BookingCreated(booking_id="...", reference="L4D-...", ...))
"""

import logging
import threading
from concurrent.futures import Executor
from dataclasses import dataclass, field
from datetime import date, datetime, time
from decimal import Decimal
from typing import Callable, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DomainEvent:
    booking_id: str
    occurred_at: datetime

    @property
    def name(self) -> str:
        return type(self).__name__


@dataclass(frozen=True)
class BookingCreated(DomainEvent):
    reference: str = ""
    customer_id: str = ""
    scheduled_date: Optional[date] = None
    scheduled_time: Optional[time] = None
    total: Decimal = Decimal("0")


@dataclass(frozen=True)
class BookingStatusChanged(DomainEvent):
    from_status: str = ""
    to_status: str = ""


@dataclass(frozen=True)
class BookingCancelled(DomainEvent):
    reference: str = ""
    customer_id: str = ""
    reason: str = ""
    refund_amount: Decimal = Decimal("0")


@dataclass(frozen=True)
class RescheduleRequested(DomainEvent):
    request_id: str = ""
    customer_id: str = ""
    requested_date: Optional[date] = None
    requested_time: Optional[time] = None
    reason: str = ""


@dataclass(frozen=True)
class RescheduleApproved(DomainEvent):
    request_id: str = ""
    old_slot_id: str = ""
    new_slot_id: str = ""


@dataclass(frozen=True)
class RescheduleRejected(DomainEvent):
    request_id: str = ""
    admin_response: Optional[str] = None


Handler = Callable[[DomainEvent], None]


@dataclass
class EventBus:
    """Fan-out of domain events to subscribers.

    With an ``executor`` handlers run in the background and ``publish``
    returns immediately; without one they run inline, still isolated from
    each other and from the publisher. The bus keeps no record of what it
    published; subscribe to ``DomainEvent`` to observe everything.

    Subscribing is safe while other threads publish: each ``publish`` works on
    a snapshot of the handlers taken under the lock.
    """

    executor: Optional[Executor] = None
    _handlers: dict[type, list[Handler]] = field(default_factory=dict)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def subscribe(self, event_type: type, handler: Handler) -> None:
        with self._lock:
            self._handlers.setdefault(event_type, []).append(handler)

    def publish(self, event: DomainEvent) -> None:
        with self._lock:
            handlers = [
                handler
                for event_type, registered in self._handlers.items()
                if isinstance(event, event_type)
                for handler in registered
            ]
        logger.debug("Publishing %s to %d handler(s)", event.name, len(handlers))
        for handler in handlers:
            if self.executor is not None:
                self.executor.submit(self._deliver, handler, event)
            else:
                self._deliver(handler, event)

    @staticmethod
    def _deliver(handler: Handler, event: DomainEvent) -> None:
        try:
            handler(event)
        except Exception:
            logger.exception(
                "Event handler %r failed for %s (booking %s)",
                handler, event.name, event.booking_id,
            )
