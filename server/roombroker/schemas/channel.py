"""Downstream channel push schemas."""

from datetime import date
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from ..models.push_log import PushType


class InventoryScope(BaseModel):
    """Hotel, room type, rate plan and stay dates that a push applies to."""

    hotel_code: str = Field(..., min_length=1, description="Channel hotel code")
    room_code: str = Field(..., min_length=1, description="Channel inventory type code")
    rate_plan_code: str = Field("STD", min_length=1)
    start_date: date
    end_date: date

    booking_id: Optional[UUID] = Field(None, description="Booking the push is logged against")
    opportunity_id: Optional[UUID] = None

    @model_validator(mode="after")
    def check_dates(self):
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class AvailabilityUpdate(InventoryScope):
    available: int = Field(1, ge=0, description="Rooms available; 0 closes the room")


class RateUpdate(InventoryScope):
    price: float = Field(..., ge=0, description="Price after tax for two guests")
    currency: Optional[str] = Field(None, description="Defaults to the configured channel currency")


class BookingPush(InventoryScope):
    """Everything needed to publish (or close) one booking."""

    price: float = Field(..., ge=0)
    available: int = Field(1, ge=0)


class PushResult(BaseModel):
    """Outcome of one push after all retry attempts."""

    success: bool
    push_type: PushType
    attempts: int = 0
    error: Optional[str] = None
    response: Optional[str] = None
    pushed_price: Optional[float] = None


class BookingPushResult(BaseModel):
    success: bool
    availability: PushResult
    rate: Optional[PushResult] = Field(None, description="Absent when availability failed")
    error: Optional[str] = None


class BatchItemResult(BaseModel):
    booking_id: Optional[UUID] = None
    success: bool
    error: Optional[str] = None


class BatchPushResult(BaseModel):
    total: int = 0
    succeeded: int = 0
    failed: int = 0
    items: list[BatchItemResult] = Field(default_factory=list)
