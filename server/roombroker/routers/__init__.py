"""FastAPI routers package."""

from .health import router as health_router
from .metrics import router as metrics_router
from .workers import router as workers_router

__all__ = [
    "health_router",
    "metrics_router",
    "workers_router",
]
