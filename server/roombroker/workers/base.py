"""Base worker class for background tasks."""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Any, Optional

from ..clients.notifications import Notifier
from ..core.clock import utcnow
from ..core.observability import metrics_collector
from ..schemas.workers import WorkerStats, WorkerStatus

logger = logging.getLogger(__name__)


class BaseWorker(ABC):
    """
    Abstract base class for background workers.

    A timer fires every ``interval_seconds`` and starts a tick running
    :meth:`process`. If the previous tick is still running the new one is
    skipped, never queued. Exceptions from a tick are logged and counted
    and never stop the timer.
    """

    def __init__(
        self,
        name: str,
        interval_seconds: float = 60,
        enabled: bool = True,
        max_unhealthy_checks: int = 3,
        notifier: Optional[Notifier] = None,
    ):
        """
        Initialize the worker.

        Args:
            name: Registry name, also used in logs and metrics
            interval_seconds: How often to run the task
            enabled: Whether ``start_all`` should start this worker
            max_unhealthy_checks: Consecutive failed health checks tolerated before a restart
            notifier: Alert sink for operator notifications
        """
        self.name = name
        self.interval_seconds = interval_seconds
        self.enabled = enabled
        self.max_unhealthy_checks = max_unhealthy_checks
        self.notifier = notifier

        self.stats = WorkerStats()
        self.healthy = True
        self.unhealthy_checks = 0
        self.restarts = 0

        self._interval_override: Optional[float] = None
        self._running = False
        self._processing = False
        self._started_at: Optional[datetime] = None
        self._task: Optional[asyncio.Task] = None
        self._tick_task: Optional[asyncio.Task] = None

    @abstractmethod
    async def process(self) -> None:
        """Process one iteration of the background task."""
        pass

    def details(self) -> dict[str, Any]:
        """Worker-specific counters reported in the status."""
        return {}

    @property
    def interval(self) -> float:
        return self._interval_override or self.interval_seconds

    @property
    def interval_override(self) -> Optional[float]:
        """Interval passed to the last :meth:`start`, if any."""
        return self._interval_override

    @property
    def running(self) -> bool:
        return self._running

    @property
    def processing(self) -> bool:
        return self._processing

    async def start(self, interval_override: Optional[float] = None) -> bool:
        """
        Start the worker.

        Returns:
            False if it was already running
        """
        if self._running:
            logger.warning(f"{self.name} worker is already running", extra={"worker": self.name})
            return False

        self._interval_override = interval_override
        self._running = True
        self._started_at = utcnow()
        self.healthy = True
        self.unhealthy_checks = 0
        self._task = asyncio.create_task(self._run())
        logger.info(
            f"{self.name} worker started with {self.interval}s interval",
            extra={"worker": self.name, "interval_seconds": self.interval}
        )
        return True

    async def stop(self) -> bool:
        """
        Stop the worker, cancelling an in-flight tick.

        Returns:
            False if it was not running
        """
        if not self._running:
            logger.warning(f"{self.name} worker is not running", extra={"worker": self.name})
            return False

        self._running = False

        for task in (self._task, self._tick_task):
            if task and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass

        self._task = None
        self._tick_task = None
        self._processing = False
        logger.info(f"{self.name} worker stopped", extra={"worker": self.name})
        return True

    async def _run(self) -> None:
        """Timer loop."""
        logger.info(f"{self.name} worker loop started", extra={"worker": self.name})

        while self._running:
            if self._processing:
                self.stats.skipped_ticks += 1
                logger.debug(f"{self.name} previous tick still running, skipping", extra={"worker": self.name})
            else:
                self._tick_task = asyncio.create_task(self.run_once())
            await asyncio.sleep(self.interval)

    async def run_once(self) -> bool:
        """
        Run one tick now.

        Returns:
            False if skipped because another tick is in progress
        """
        if self._processing:
            self.stats.skipped_ticks += 1
            return False

        self._processing = True
        started = time.monotonic()
        self.stats.runs += 1
        self.stats.last_run = utcnow()
        outcome = "success"

        try:
            await self.process()
            self.stats.successes += 1
            self.stats.last_success = utcnow()
        except asyncio.CancelledError:
            outcome = "cancelled"
            raise
        except Exception as e:
            outcome = "failure"
            self.stats.failures += 1
            self.stats.last_failure = utcnow()
            self.stats.last_error = str(e) or e.__class__.__name__
            logger.error(
                f"{self.name} worker error: {str(e)}",
                exc_info=True,
                extra={"worker": self.name}
            )
        finally:
            self._processing = False
            duration = time.monotonic() - started
            metrics_collector.record_worker_run(self.name, outcome, duration)
            if duration > 2:
                logger.info(
                    f"{self.name} worker iteration completed",
                    extra={"duration_seconds": duration, "worker": self.name}
                )

        return True

    def is_overdue(self, now: Optional[datetime] = None) -> bool:
        """True if running and nothing ran for more than twice the interval."""
        if not self._running:
            return False
        reference = self.stats.last_run or self._started_at
        if reference is None:
            return False
        now = now or utcnow()
        return now - reference > timedelta(seconds=2 * self.interval)

    async def _notify(self, text: str, **options: Any) -> bool:
        """Send a notification; never raises."""
        if self.notifier is None:
            return False
        try:
            return await self.notifier.send(text, **options)
        except Exception as e:
            logger.error(
                f"{self.name} notification failed: {e}",
                exc_info=True,
                extra={"worker": self.name}
            )
            return False

    def status(self) -> WorkerStatus:
        return WorkerStatus(
            name=self.name,
            enabled=self.enabled,
            running=self._running,
            processing=self._processing,
            interval_seconds=self.interval,
            healthy=self.healthy,
            unhealthy_checks=self.unhealthy_checks,
            max_unhealthy_checks=self.max_unhealthy_checks,
            restarts=self.restarts,
            stats=self.stats.model_copy(),
            details=self.details(),
        )
