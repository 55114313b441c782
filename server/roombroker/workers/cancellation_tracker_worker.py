"""Cancellation tracker: compares local cancellation state with what suppliers report."""

import logging
from datetime import datetime, timedelta
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..clients.aggregator import SupplierAggregator
from ..clients.notifications import Notifier
from ..core.clock import utcnow
from ..core.config import Settings
from ..core.observability import metrics_collector
from ..models.booking import Booking
from ..schemas.audit import CancellationDiscrepancy
from ..services.booking_service import BookingService
from .base import BaseWorker

logger = logging.getLogger(__name__)

CANCELLED_STATUSES = frozenset({"cancelled", "canceled", "cx"})
TOP_DISCREPANCIES_IN_SUMMARY = 5


def is_cancelled_status(status: str) -> bool:
    return status.strip().casefold() in CANCELLED_STATUSES


def _discrepancy(booking: Booking, local_status: str, supplier_status: str, message: str) -> CancellationDiscrepancy:
    return CancellationDiscrepancy(
        booking_id=booking.id,
        hotel_name=booking.hotel.name if booking.hotel else None,
        provider=booking.provider,
        confirmation_ref=booking.confirmation_ref,
        local_status=local_status,
        supplier_status=supplier_status,
        message=message,
    )


class CancellationTrackerWorker(BaseWorker):
    """
    Asks suppliers for the status of recently cancelled and upcoming bookings.

    A booking cancelled locally that the supplier still holds, or an active
    booking the supplier has cancelled, is a discrepancy. Failed status
    lookups are logged and skipped, never counted as discrepancies. The
    discrepancies of the latest run are kept for the status endpoint.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        aggregator: SupplierAggregator,
        notifier: Optional[Notifier] = None,
        interval_seconds: float = 1800,
        enabled: bool = False,
        max_unhealthy_checks: int = 3,
        lookback_days: int = 7,
        active_limit: int = 20,
    ):
        super().__init__(
            name="cancellation_tracker",
            interval_seconds=interval_seconds,
            enabled=enabled,
            max_unhealthy_checks=max_unhealthy_checks,
            notifier=notifier,
        )
        self.session_factory = session_factory
        self.aggregator = aggregator
        self.lookback = timedelta(days=lookback_days)
        self.active_limit = active_limit
        self.counters = {"checked": 0, "discrepancies": 0, "lookup_failures": 0}
        self.last_discrepancies: list[CancellationDiscrepancy] = []
        self._checked_at: Optional[datetime] = None

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        session_factory: async_sessionmaker[AsyncSession],
        aggregator: SupplierAggregator,
        notifier: Optional[Notifier] = None,
    ) -> "CancellationTrackerWorker":
        return cls(
            session_factory,
            aggregator,
            notifier,
            interval_seconds=settings.cancellation_tracker_worker_interval_seconds,
            enabled=settings.cancellation_tracker_worker_enabled,
            max_unhealthy_checks=settings.cancellation_tracker_worker_max_unhealthy_checks,
            lookback_days=settings.cancellation_tracker_lookback_days,
            active_limit=settings.cancellation_tracker_active_limit,
        )

    def details(self) -> dict[str, Any]:
        return {
            **self.counters,
            "last_checked_at": self._checked_at.isoformat() if self._checked_at else None,
            "last_discrepancies": [d.model_dump(mode="json") for d in self.last_discrepancies],
        }

    async def _supplier_status(self, booking: Booking) -> Optional[str]:
        """Status the supplier reports, or None when it cannot be asked or did not answer."""
        client = self.aggregator.client_for(booking.provider)
        if client is None or not client.is_configured():
            logger.debug(
                "No usable client for booking provider",
                extra={"booking_id": str(booking.id), "provider": booking.provider}
            )
            return None

        result = await client.get_status(booking.confirmation_ref)
        if not result.success or not result.status:
            self.counters["lookup_failures"] += 1
            logger.warning(
                f"Booking status lookup failed: {result.error or 'no status returned'}",
                extra={"booking_id": str(booking.id), "provider": booking.provider}
            )
            return None
        return result.status

    async def process(self) -> None:
        now = utcnow()
        async with self.session_factory() as session:
            service = BookingService(session)
            cancelled = await service.list_recently_cancelled(now - self.lookback)
            upcoming = await service.list_upcoming_supplier_bookings(now.date(), self.active_limit)

        checked = 0
        discrepancies: list[CancellationDiscrepancy] = []

        for booking in cancelled:
            status = await self._supplier_status(booking)
            if status is None:
                continue
            checked += 1
            if not is_cancelled_status(status):
                discrepancies.append(_discrepancy(
                    booking, "cancelled", status, f"Cancelled locally but supplier shows status: {status}"
                ))

        for booking in upcoming:
            status = await self._supplier_status(booking)
            if status is None:
                continue
            checked += 1
            if is_cancelled_status(status):
                discrepancies.append(_discrepancy(
                    booking, "active", status, "Active locally but supplier shows CANCELLED"
                ))

        self.counters["checked"] += checked
        self.counters["discrepancies"] += len(discrepancies)
        self.last_discrepancies = discrepancies
        self._checked_at = utcnow()
        metrics_collector.set_cancellation_discrepancies(len(discrepancies))

        if not discrepancies:
            logger.info(
                f"Cancellation tracking complete - {checked} bookings agree with suppliers",
                extra={"worker": self.name}
            )
            return

        logger.warning(
            "Cancellation discrepancies found",
            extra={"checked": checked, "discrepancies": len(discrepancies)}
        )
        top = "\n".join(
            f"  - {d.hotel_name or 'Unknown'} ({d.provider} {d.confirmation_ref}): {d.message}"
            for d in discrepancies[:TOP_DISCREPANCIES_IN_SUMMARY]
        )
        await self._notify(
            f"*Cancellation Tracking Discrepancies*\nChecked: {checked}\n"
            f"Discrepancies: {len(discrepancies)}\n\n*Top Issues:*\n{top}"
        )
