"""Background workers."""

from .acquisition_worker import AcquisitionWorker, RoomChoice, select_room
from .audit_worker import AuditWorker
from .base import BaseWorker
from .cancellation_tracker_worker import CancellationTrackerWorker
from .lifecycle_worker import LifecycleWorker
from .remediation_worker import RemediationWorker
from .supervisor import WorkerSupervisor, build_supervisor
from .verification_worker import PushVerificationWorker

__all__ = [
    "AcquisitionWorker",
    "AuditWorker",
    "BaseWorker",
    "CancellationTrackerWorker",
    "LifecycleWorker",
    "PushVerificationWorker",
    "RemediationWorker",
    "RoomChoice",
    "WorkerSupervisor",
    "build_supervisor",
    "select_room",
]
