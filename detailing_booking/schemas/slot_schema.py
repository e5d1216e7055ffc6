"""Calendar slot data models."""

from datetime import date, datetime, time
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from detailing_booking.utils import slot_start


class TimeSlot(BaseModel):
    """Single bookable date+time unit.

    ``is_open`` is the operations-staff flag; ``reserved_by`` holds the id of
    the one booking occupying the slot.
    """
    id: str
    slot_date: date
    start_time: time
    duration_minutes: int = 120
    is_open: bool = True
    reserved_by: Optional[str] = None

    @property
    def starts_at(self) -> datetime:
        return slot_start(self.slot_date, self.start_time)


class SlotRangeQuery(BaseModel):
    start_date: date
    end_date: date

    @model_validator(mode="after")
    def _ordered(self) -> "SlotRangeQuery":
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class SeedSlotsInput(BaseModel):
    """Validated payload for seeding one day of slots."""
    slot_date: date
    start_times: Optional[list[time]] = None
    duration_minutes: Optional[int] = Field(default=None, gt=0)


class DailyCapacity(BaseModel):
    """Capacity of one day, derived from its TimeSlot rows."""
    slot_date: date
    total: int
    reserved: int
    available: int
