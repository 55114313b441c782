"""Normalized supplier request and result schemas."""

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from ..core.clock import as_naive_utc


class SearchCriteria(BaseModel):
    """Availability search for one or more supplier hotel ids."""

    check_in: date = Field(..., description="Check-in date")
    check_out: date = Field(..., description="Check-out date")
    hotel_ids: list[str] = Field(..., min_length=1, description="Supplier hotel ids")
    adults: int = Field(2, ge=1)
    children: list[int] = Field(default_factory=list, description="Children ages")
    nationality: str = Field("IL", min_length=2, max_length=2)
    currency: str = Field("EUR", min_length=3, max_length=3)


class Penalty(BaseModel):
    amount: Optional[float] = None
    currency: Optional[str] = None


class CancellationFrame(BaseModel):
    """One time window of a cancellation policy and the penalty inside it."""

    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None
    penalty: Optional[Penalty] = None

    @field_validator("starts_at", "ends_at")
    @classmethod
    def to_naive_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return as_naive_utc(v)


class CancellationPolicy(BaseModel):
    type: Optional[str] = None
    deadline: Optional[datetime] = Field(None, description="Last moment to cancel without penalty")
    frames: list[CancellationFrame] = Field(default_factory=list)

    @field_validator("deadline")
    @classmethod
    def to_naive_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return as_naive_utc(v)


class SupplierRoom(BaseModel):
    """A bookable room offer as returned by one supplier."""

    room_id: Optional[str] = None
    rate_id: Optional[str] = None
    name: Optional[str] = None
    category_name: Optional[str] = None
    board_name: Optional[str] = None
    price: Optional[float] = None
    currency: str = "EUR"
    cancellation_policy: Optional[CancellationPolicy] = None
    supplier: Optional[str] = Field(None, description="Supplier that offered this room")


class SupplierHotel(BaseModel):
    hotel_id: str
    name: str = ""
    search_token: Optional[str] = None
    rooms: list[SupplierRoom] = Field(default_factory=list)
    suppliers: list[str] = Field(default_factory=list, description="Suppliers whose rooms are included")


class SearchResult(BaseModel):
    success: bool
    supplier: str
    hotels: list[SupplierHotel] = Field(default_factory=list)
    error: Optional[str] = None


class HoldRequest(BaseModel):
    """Everything a supplier needs to place a hold on a searched room."""

    hotel_id: str
    room_id: Optional[str] = None
    rate_id: Optional[str] = None
    search_token: Optional[str] = None
    check_in: date
    check_out: date
    adults: int = 2
    children: list[int] = Field(default_factory=list)


class HoldResult(BaseModel):
    success: bool
    supplier: str
    hold_id: Optional[str] = None
    price: Optional[float] = None
    currency: Optional[str] = None
    token: Optional[str] = None
    cancellation_type: Optional[str] = None
    cancellation_deadline: Optional[datetime] = None
    error: Optional[str] = None

    @field_validator("cancellation_deadline")
    @classmethod
    def to_naive_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return as_naive_utc(v)


class GuestDetails(BaseModel):
    title: str = "Mr"
    first_name: str = "Guest"
    last_name: str = "Guest"
    email: str = "booking@roombroker.local"
    phone: str = "+972000000000"


class ConfirmRequest(BaseModel):
    hold_id: Optional[str] = None
    token: Optional[str] = None
    guest: GuestDetails = Field(default_factory=GuestDetails)


class ConfirmResult(BaseModel):
    success: bool
    supplier: str
    booking_id: Optional[str] = None
    confirmation_number: Optional[str] = None
    supplier_reference: Optional[str] = None
    status: Optional[str] = None
    error: Optional[str] = None


class CancelResult(BaseModel):
    success: bool
    supplier: str
    cancellation_id: Optional[str] = None
    refund_amount: Optional[float] = None
    fee: Optional[float] = None
    error: Optional[str] = None


class StatusResult(BaseModel):
    success: bool
    supplier: str
    status: Optional[str] = None
    data: dict = Field(default_factory=dict)
    error: Optional[str] = None


class SupplierOutcome(BaseModel):
    """Per-supplier section of an aggregated search."""

    success: bool
    hotel_count: int = 0
    room_count: int = 0
    error: Optional[str] = None
    response_ms: Optional[int] = None


class BestPrice(BaseModel):
    price: float
    hotel_id: str
    hotel_name: str
    room: SupplierRoom
    supplier: Optional[str] = None


class AggregatedSearch(BaseModel):
    search_id: str
    success: bool
    suppliers: dict[str, SupplierOutcome] = Field(default_factory=dict)
    merged: list[SupplierHotel] = Field(default_factory=list)
    best_price: Optional[BestPrice] = None
    error: Optional[str] = None


class SupplierStats(BaseModel):
    name: str
    configured: bool
