"""Cancellation policy data models."""

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from detailing_booking.schemas.booking_schema import Booking


class CancellationPolicy(BaseModel):
    """Outcome of evaluating the refund policy for one booking at one instant."""
    refund_eligible: bool
    refund_amount: Decimal
    hours_until_appointment: float
    can_cancel: bool = True
    warning: Optional[str] = None


class CancellationResult(BaseModel):
    booking: Booking
    policy: CancellationPolicy
    refund_amount: Decimal
    slot_released: bool = True


class CancelBookingInput(BaseModel):
    """Validated payload for cancelBooking."""
    booking_id: str = Field(min_length=1)
    customer_id: Optional[str] = None
    reason: str = Field(min_length=1, max_length=1000)
    acknowledge_no_refund: bool = False
