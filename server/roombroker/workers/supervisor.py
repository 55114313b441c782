"""Worker supervisor: registry, control operations and health monitoring."""

import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..clients.aggregator import SupplierAggregator
from ..clients.channel import ChannelPushClient
from ..clients.notifications import Notifier
from ..core.clock import utcnow
from ..core.config import Settings
from ..core.exceptions import WorkerNotFoundError
from ..core.observability import metrics_collector
from ..schemas.workers import SupervisorStatus, WorkerStatus
from .acquisition_worker import AcquisitionWorker
from .audit_worker import AuditWorker
from .base import BaseWorker
from .cancellation_tracker_worker import CancellationTrackerWorker
from .lifecycle_worker import LifecycleWorker
from .remediation_worker import RemediationWorker
from .verification_worker import PushVerificationWorker

logger = logging.getLogger(__name__)


class WorkerSupervisor:
    """
    Owns the background workers of the process.

    Starts and stops them by name and runs a health monitor. A running worker
    that has not ticked for more than twice its interval is unhealthy; once a
    worker stays unhealthy for more than its ``max_unhealthy_checks``
    consecutive checks it is restarted.
    """

    def __init__(
        self,
        workers: List[BaseWorker],
        auto_start: bool = False,
        health_check_interval_seconds: float = 60.0,
        restart_settle_seconds: float = 2.0,
        notifier: Optional[Notifier] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.workers: Dict[str, BaseWorker] = {worker.name: worker for worker in workers}
        self.auto_start = auto_start
        self.health_check_interval_seconds = health_check_interval_seconds
        self.restart_settle_seconds = restart_settle_seconds
        self.notifier = notifier
        self._sleep = sleep
        self._monitor_task: Optional[asyncio.Task] = None

        logger.info(f"Initialized {len(self.workers)} workers", extra={"workers": self.list_names()})

    def list_names(self) -> List[str]:
        return list(self.workers)

    def get(self, name: str) -> BaseWorker:
        """
        Get a worker by name.

        Raises:
            WorkerNotFoundError: If no worker is registered under that name
        """
        worker = self.workers.get(name)
        if worker is None:
            raise WorkerNotFoundError(name, self.list_names())
        return worker

    async def start(self, name: str, interval_override: Optional[float] = None) -> bool:
        """Start one worker. Returns False if it was already running."""
        return await self.get(name).start(interval_override)

    async def stop(self, name: str) -> bool:
        """Stop one worker. Returns False if it was not running."""
        return await self.get(name).stop()

    async def start_all(self) -> List[str]:
        """
        Start every enabled worker, if auto-start is on.

        Returns:
            Names of the workers that were started
        """
        if not self.auto_start:
            logger.info("Worker auto-start disabled, not starting workers")
            return []

        logger.info("Starting all workers")
        started = []
        for name, worker in self.workers.items():
            if not worker.enabled:
                logger.info(f"Worker {name} is disabled, not starting", extra={"worker": name})
                continue
            try:
                if await worker.start():
                    started.append(name)
            except Exception as e:
                logger.error(f"Failed to start worker {name}: {str(e)}", exc_info=True)

        logger.info(f"Started {len(started)} workers", extra={"workers": started})
        return started

    async def stop_all(self) -> None:
        """Stop all running workers concurrently."""
        logger.info("Stopping all workers")

        running = [worker for worker in self.workers.values() if worker.running]
        results = await asyncio.gather(*(worker.stop() for worker in running), return_exceptions=True)

        for worker, result in zip(running, results):
            if isinstance(result, Exception):
                logger.error(f"Error stopping worker {worker.name}: {str(result)}")

        logger.info("All workers stopped")

    def status(self) -> SupervisorStatus:
        return SupervisorStatus(
            auto_start=self.auto_start,
            monitoring=self.monitoring,
            workers={name: worker.status() for name, worker in self.workers.items()},
        )

    def worker_status(self, name: str) -> WorkerStatus:
        return self.get(name).status()

    @property
    def monitoring(self) -> bool:
        return self._monitor_task is not None and not self._monitor_task.done()

    def start_monitoring(self) -> bool:
        if self.monitoring:
            return False
        self._monitor_task = asyncio.create_task(self._monitor())
        logger.info(
            "Health monitoring started",
            extra={"interval_seconds": self.health_check_interval_seconds}
        )
        return True

    async def stop_monitoring(self) -> None:
        task = self._monitor_task
        self._monitor_task = None
        if task and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def _monitor(self) -> None:
        while True:
            await self._sleep(self.health_check_interval_seconds)
            try:
                await self.check_health()
            except Exception as e:
                logger.error(f"Health check failed: {str(e)}", exc_info=True)

    async def check_health(self) -> List[str]:
        """
        Run one health check over all running workers.

        Returns:
            Names of the workers found unhealthy
        """
        now = utcnow()
        unhealthy = []

        for name, worker in self.workers.items():
            if not worker.running:
                metrics_collector.set_worker_health(name, True)
                continue

            if not worker.is_overdue(now):
                worker.healthy = True
                worker.unhealthy_checks = 0
                metrics_collector.set_worker_health(name, True)
                continue

            worker.healthy = False
            worker.unhealthy_checks += 1
            unhealthy.append(name)
            metrics_collector.set_worker_health(name, False)
            logger.warning(
                f"Worker {name} is unhealthy",
                extra={
                    "worker": name,
                    "unhealthy_checks": worker.unhealthy_checks,
                    "last_run": worker.stats.last_run.isoformat() if worker.stats.last_run else None,
                }
            )

            if worker.unhealthy_checks > worker.max_unhealthy_checks:
                await self.restart(name)

        if len(unhealthy) > 1:
            await self._notify(
                f"*Multiple Workers Unhealthy*\nWorkers: {', '.join(unhealthy)}\nTime: {now.isoformat()}"
            )
        return unhealthy

    async def restart(self, name: str) -> bool:
        """Stop a worker, let it settle, and start it again with its previous interval."""
        worker = self.get(name)
        interval_override = worker.interval_override
        logger.warning(f"Restarting worker {name}", extra={"worker": name, "restarts": worker.restarts})

        await worker.stop()
        await self._sleep(self.restart_settle_seconds)
        started = await worker.start(interval_override)

        worker.restarts += 1
        metrics_collector.record_worker_restart(name)
        await self._notify(
            f"*Worker Restarted*\nWorker: {name}\nRestarts: {worker.restarts}\n"
            f"Last error: {worker.stats.last_error or 'none'}"
        )
        return started

    async def _notify(self, text: str) -> bool:
        if self.notifier is None:
            return False
        try:
            return await self.notifier.send(text)
        except Exception as e:
            logger.error(f"Supervisor notification failed: {e}", exc_info=True)
            return False


def build_supervisor(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    aggregator: SupplierAggregator,
    channel: ChannelPushClient,
    notifier: Optional[Notifier] = None,
) -> WorkerSupervisor:
    """Construct the six workers from settings and register them."""
    audit = AuditWorker.from_settings(settings, session_factory, notifier)
    workers = [
        AcquisitionWorker.from_settings(settings, session_factory, aggregator, channel, notifier),
        LifecycleWorker.from_settings(settings, session_factory, aggregator, channel, notifier),
        PushVerificationWorker.from_settings(settings, session_factory, channel, notifier),
        audit,
        RemediationWorker.from_settings(settings, audit, channel, notifier),
        CancellationTrackerWorker.from_settings(settings, session_factory, aggregator, notifier),
    ]
    return WorkerSupervisor(
        workers,
        auto_start=settings.workers_auto_start,
        health_check_interval_seconds=settings.health_check_interval_seconds,
        restart_settle_seconds=settings.restart_settle_seconds,
        notifier=notifier,
    )
