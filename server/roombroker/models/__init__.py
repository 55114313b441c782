"""Models module exporting all database models."""

from .booking import Booking, BookingStatus, Hold
from .cancellation import CancellationRecord
from .hotel import Board, Hotel, RoomCategory
from .opportunity import Opportunity
from .push_log import PushLogEntry, PushQueueItem, PushType, QueueStatus

__all__ = [
    # Reference data
    "Hotel",
    "RoomCategory",
    "Board",

    # Acquisition
    "Opportunity",
    "Hold",
    "Booking",
    "BookingStatus",
    "CancellationRecord",

    # Downstream publication
    "PushLogEntry",
    "PushQueueItem",
    "PushType",
    "QueueStatus",
]
