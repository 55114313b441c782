"""Service layer package."""

from .booking_service import BookingService
from .opportunity_service import OpportunityService
from .push_log_service import PushLogService

__all__ = [
    "BookingService",
    "OpportunityService",
    "PushLogService",
]
