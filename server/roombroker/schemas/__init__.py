"""Pydantic schemas for supplier, channel, audit and worker data."""

from .audit import (
    AuditProblem,
    AuditProblemType,
    AuditReport,
    CancellationDiscrepancy,
    FixOutcome,
    FixResult,
)
from .channel import (
    AvailabilityUpdate,
    BatchItemResult,
    BatchPushResult,
    BookingPush,
    BookingPushResult,
    PushResult,
    RateUpdate,
)
from .health import HealthResponse, HealthStatus
from .supplier import (
    AggregatedSearch,
    BestPrice,
    CancelResult,
    ConfirmRequest,
    ConfirmResult,
    HoldRequest,
    HoldResult,
    SearchCriteria,
    SearchResult,
    StatusResult,
    SupplierHotel,
    SupplierRoom,
)
from .workers import StartWorkerRequest, SupervisorStatus, WorkerActionResponse, WorkerStats, WorkerStatus

__all__ = [
    "AuditProblem",
    "AuditProblemType",
    "AuditReport",
    "CancellationDiscrepancy",
    "FixOutcome",
    "FixResult",
    "AvailabilityUpdate",
    "BatchItemResult",
    "BatchPushResult",
    "BookingPush",
    "BookingPushResult",
    "PushResult",
    "RateUpdate",
    "HealthResponse",
    "HealthStatus",
    "AggregatedSearch",
    "BestPrice",
    "CancelResult",
    "ConfirmRequest",
    "ConfirmResult",
    "HoldRequest",
    "HoldResult",
    "SearchCriteria",
    "SearchResult",
    "StatusResult",
    "SupplierHotel",
    "SupplierRoom",
    "StartWorkerRequest",
    "SupervisorStatus",
    "WorkerActionResponse",
    "WorkerStats",
    "WorkerStatus",
]
