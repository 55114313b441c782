"""Audit problem and remediation schemas."""

from datetime import date, datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class AuditProblemType(str, Enum):
    """Kinds of drift the audit detects."""
    MISSING_PUSH = "missing_push"
    MISSING_CHANNEL_MAPPING = "missing_channel_mapping"
    PRICE_MISMATCH = "price_mismatch"
    OVERLAPPING_BOOKINGS = "overlapping_bookings"


class AuditProblem(BaseModel):
    """One detected inconsistency between local bookings and the channel."""

    type: AuditProblemType
    booking_id: Optional[UUID] = None
    other_booking_id: Optional[UUID] = Field(None, description="Second booking of an overlapping pair")
    hotel_id: Optional[UUID] = None
    hotel_name: Optional[str] = None
    hotel_code: Optional[str] = None
    room_code: Optional[str] = None
    rate_plan_code: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    expected: Optional[Any] = None
    actual: Optional[Any] = None
    message: str


class FixOutcome(str, Enum):
    FIXED = "fixed"
    SKIPPED = "skipped"
    FAILED = "failed"


class FixResult(BaseModel):
    problem: AuditProblem
    outcome: FixOutcome
    detail: Optional[str] = None
    error: Optional[str] = None


class AuditReport(BaseModel):
    """Problems from the latest audit run."""

    generated_at: Optional[datetime] = None
    total: int = 0
    by_type: dict[str, int] = Field(default_factory=dict)
    problems: list[AuditProblem] = Field(default_factory=list)


class CancellationDiscrepancy(BaseModel):
    """A booking whose local state disagrees with the supplier's."""

    booking_id: UUID
    hotel_name: Optional[str] = None
    provider: str
    confirmation_ref: str
    local_status: str
    supplier_status: Optional[str] = None
    message: str
