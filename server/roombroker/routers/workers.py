"""Worker control router."""

import logging
from typing import List, Optional

from fastapi import APIRouter, Body, Depends, Request

from ..schemas.audit import AuditReport
from ..schemas.workers import (
    StartWorkerRequest,
    SupervisorStatus,
    WorkerActionResponse,
    WorkerStatus,
)
from ..workers.audit_worker import AuditWorker
from ..workers.supervisor import WorkerSupervisor

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/workers", tags=["workers"])


def get_supervisor(request: Request) -> WorkerSupervisor:
    """The supervisor built at startup and held on the application state."""
    return request.app.state.supervisor


@router.get("/", response_model=SupervisorStatus)
async def list_workers(supervisor: WorkerSupervisor = Depends(get_supervisor)) -> SupervisorStatus:
    """Status of every registered worker."""
    return supervisor.status()


@router.get("/names", response_model=List[str])
async def list_worker_names(supervisor: WorkerSupervisor = Depends(get_supervisor)) -> List[str]:
    return supervisor.list_names()


@router.post("/start-all", response_model=List[str])
async def start_all_workers(supervisor: WorkerSupervisor = Depends(get_supervisor)) -> List[str]:
    """
    Start every enabled worker.

    Nothing is started when auto-start is turned off. Returns the names of
    the workers that were started.
    """
    started = await supervisor.start_all()
    logger.info("Start-all requested", extra={"started": started})
    return started


@router.post("/stop-all", response_model=SupervisorStatus)
async def stop_all_workers(supervisor: WorkerSupervisor = Depends(get_supervisor)) -> SupervisorStatus:
    await supervisor.stop_all()
    return supervisor.status()


@router.get("/audit/problems", response_model=AuditReport)
async def get_audit_problems(supervisor: WorkerSupervisor = Depends(get_supervisor)) -> AuditReport:
    """Problems found by the most recent completed audit run."""
    audit: AuditWorker = supervisor.get("audit")  # type: ignore[assignment]
    return audit.get_report()


@router.get("/{name}", response_model=WorkerStatus)
async def get_worker(name: str, supervisor: WorkerSupervisor = Depends(get_supervisor)) -> WorkerStatus:
    return supervisor.worker_status(name)


@router.post("/{name}/start", response_model=WorkerActionResponse)
async def start_worker(
    name: str,
    request: Optional[StartWorkerRequest] = Body(None),
    supervisor: WorkerSupervisor = Depends(get_supervisor),
) -> WorkerActionResponse:
    """
    Start one worker, optionally with a different interval.

    Starting a worker that is already running changes nothing.
    """
    interval = request.interval_seconds if request else None
    started = await supervisor.start(name, interval)

    logger.info(
        "Worker start requested",
        extra={"worker": name, "started": started, "interval_seconds": interval}
    )
    return WorkerActionResponse(
        name=name,
        running=supervisor.get(name).running,
        message=f"{name} worker started" if started else f"{name} worker is already running",
    )


@router.post("/{name}/stop", response_model=WorkerActionResponse)
async def stop_worker(name: str, supervisor: WorkerSupervisor = Depends(get_supervisor)) -> WorkerActionResponse:
    stopped = await supervisor.stop(name)

    logger.info("Worker stop requested", extra={"worker": name, "stopped": stopped})
    return WorkerActionResponse(
        name=name,
        running=supervisor.get(name).running,
        message=f"{name} worker stopped" if stopped else f"{name} worker is not running",
    )
