"""Reschedule request data models."""

from datetime import date, datetime, time
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class RescheduleStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    EXPIRED = "expired"


class RescheduleRequest(BaseModel):
    """Customer's request to move a booking, awaiting an admin decision."""
    id: str
    booking_id: str
    customer_id: str
    requested_date: date
    requested_time: time
    slot_id: str
    reason: str
    status: RescheduleStatus = RescheduleStatus.PENDING
    created_at: datetime
    responded_at: Optional[datetime] = None
    admin_response: Optional[str] = None


class RescheduleInput(BaseModel):
    """Validated payload for requestReschedule."""
    booking_id: str = Field(min_length=1)
    customer_id: str = Field(min_length=1)
    new_date: date
    new_time: time
    reason: str = Field(min_length=1, max_length=1000)


class RescheduleDecisionInput(BaseModel):
    request_id: str = Field(min_length=1)
    admin_response: Optional[str] = Field(default=None, max_length=1000)
