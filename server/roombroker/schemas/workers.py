"""Worker control schemas."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field


class WorkerStats(BaseModel):
    runs: int = 0
    successes: int = 0
    failures: int = 0
    skipped_ticks: int = 0
    last_run: Optional[datetime] = None
    last_success: Optional[datetime] = None
    last_failure: Optional[datetime] = None
    last_error: Optional[str] = None


class WorkerStatus(BaseModel):
    """Runtime status of one registered worker."""

    name: str
    enabled: bool
    running: bool
    processing: bool = Field(False, description="A tick is executing right now")
    interval_seconds: float
    healthy: bool = True
    unhealthy_checks: int = 0
    max_unhealthy_checks: int
    restarts: int = 0
    stats: WorkerStats
    details: dict[str, Any] = Field(default_factory=dict, description="Worker-specific counters")


class SupervisorStatus(BaseModel):
    auto_start: bool
    monitoring: bool
    workers: dict[str, WorkerStatus]


class StartWorkerRequest(BaseModel):
    interval_seconds: Optional[float] = Field(
        None, gt=0, description="Override the configured interval for this run"
    )


class WorkerActionResponse(BaseModel):
    name: str
    running: bool
    message: str
