"""Booking, pricing and booking-input data models."""

from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from detailing_booking.utils import normalize_postcode, slot_start


class BookingStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class VehicleSize(str, Enum):
    SMALL = "S"
    MEDIUM = "M"
    LARGE = "L"
    EXTRA_LARGE = "XL"


class ServiceDescriptor(BaseModel):
    """Catalog service selected by the customer."""
    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    base_price: Decimal = Field(gt=0)
    duration_minutes: int = Field(default=120, gt=0)


class VehicleDescriptor(BaseModel):
    make: str = Field(min_length=1)
    model: str = Field(min_length=1)
    size: VehicleSize
    registration: Optional[str] = None


class AddressDescriptor(BaseModel):
    """Service address with its distance from the business base.

    ``distance_miles`` is normally precomputed; when only coordinates are
    supplied it is derived at booking time.
    """
    address_line1: str = Field(min_length=1)
    address_line2: Optional[str] = None
    city: str = Field(min_length=1)
    postcode: str = Field(min_length=2)
    distance_miles: Optional[Decimal] = Field(default=None, ge=0)
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)

    @field_validator("postcode")
    @classmethod
    def _normalize_postcode(cls, value: str) -> str:
        return normalize_postcode(value)

    @model_validator(mode="after")
    def _distance_or_coordinates(self) -> "AddressDescriptor":
        has_coordinates = self.latitude is not None and self.longitude is not None
        if self.distance_miles is None and not has_coordinates:
            raise ValueError("address needs distance_miles or latitude/longitude")
        return self


class PriceBreakdown(BaseModel):
    """Price locked onto a booking at creation time."""
    base_price: Decimal
    vehicle_size_multiplier: Decimal
    adjusted_price: Decimal
    distance_miles: Decimal
    within_free_radius: bool
    distance_surcharge: Decimal
    total: Decimal
    vehicle_size: Optional[VehicleSize] = None


class Booking(BaseModel):
    """Persisted booking record. Never physically deleted."""
    id: str
    reference: str
    customer_id: str
    service: ServiceDescriptor
    vehicle: VehicleDescriptor
    address: AddressDescriptor
    slot_id: str
    scheduled_date: date
    scheduled_time: time
    status: BookingStatus = BookingStatus.PENDING
    price: PriceBreakdown
    special_instructions: str = ""
    created_at: datetime
    confirmed_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    refund_amount: Optional[Decimal] = None
    # Bumped by the store on every save; a write with a stale version is refused.
    version: int = 0

    @property
    def scheduled_start(self) -> datetime:
        return slot_start(self.scheduled_date, self.scheduled_time)


class CreateBookingInput(BaseModel):
    """Validated payload for createBooking."""
    customer_id: str = Field(min_length=1)
    service: ServiceDescriptor
    vehicle: VehicleDescriptor
    address: AddressDescriptor
    slot_id: str = Field(min_length=1)
    special_instructions: str = Field(default="", max_length=1000)


class PriceQuoteInput(BaseModel):
    """Validated payload for a price quote without a booking."""
    service: ServiceDescriptor
    vehicle: VehicleDescriptor
    address: AddressDescriptor


class TransitionInput(BaseModel):
    booking_id: str = Field(min_length=1)
    status: BookingStatus
