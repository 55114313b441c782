"""Health check router."""

import logging

from fastapi import APIRouter, Depends

from ..core.clock import utcnow
from ..schemas.health import HealthResponse, HealthStatus
from ..workers.supervisor import WorkerSupervisor
from .workers import get_supervisor

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/health", tags=["health"])


@router.get("/ping", response_model=HealthResponse)
async def health_ping(supervisor: WorkerSupervisor = Depends(get_supervisor)) -> HealthResponse:
    """
    Health check endpoint.

    Degraded when any running worker is failing its health checks.
    """
    workers = supervisor.workers.values()
    unhealthy = [w.name for w in workers if w.running and not w.healthy]

    response_data = HealthResponse(
        status=HealthStatus.DEGRADED if unhealthy else HealthStatus.HEALTHY,
        timestamp=utcnow(),
        version="1.0.0",
        workers_running=sum(1 for w in workers if w.running),
        workers_unhealthy=unhealthy,
    )

    logger.debug(
        "Health check requested",
        extra={
            "status": response_data.status.value,
            "timestamp": response_data.timestamp.isoformat()
        }
    )
    return response_data
