"""Lifecycle worker: cancels unsold bookings before their free-cancellation deadline."""

import logging
from datetime import timedelta
from typing import Any, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..clients.aggregator import SupplierAggregator
from ..clients.channel import ChannelPushClient
from ..clients.notifications import Notifier
from ..core.clock import utcnow
from ..core.config import Settings
from ..core.exceptions import CancellationError
from ..core.observability import metrics_collector
from ..core.rate_limit import SlidingWindowRateLimiter
from ..models.booking import Booking
from ..schemas.channel import AvailabilityUpdate
from ..schemas.supplier import CancelResult
from ..services.booking_service import BookingService
from .base import BaseWorker

logger = logging.getLogger(__name__)

CANCELLATION_REASON = "Auto-cancellation: unsold before free-cancellation deadline"
LOCAL_CANCELLATION_ID = "LOCAL"
CAP_WINDOW_SECONDS = 3600.0


class LifecycleWorker(BaseWorker):
    """
    Cancels active, unsold bookings whose free-cancellation deadline falls
    within the horizon, nearest deadline first.

    Successful cancellations count against a rolling hourly cap; once it is
    reached the remaining candidates wait for a later run. A booking that
    cannot be cancelled is left untouched and escalated to an operator. A
    booking cancelled upstream whose local update fails is reported
    separately and not attempted again by this worker.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        aggregator: SupplierAggregator,
        channel: ChannelPushClient,
        notifier: Optional[Notifier] = None,
        interval_seconds: float = 300,
        enabled: bool = False,
        max_unhealthy_checks: int = 2,
        horizon_hours: float = 24,
        max_cancellations_per_hour: int = 10,
        rate_limiter: Optional[SlidingWindowRateLimiter] = None,
    ):
        super().__init__(
            name="lifecycle",
            interval_seconds=interval_seconds,
            enabled=enabled,
            max_unhealthy_checks=max_unhealthy_checks,
            notifier=notifier,
        )
        self.session_factory = session_factory
        self.aggregator = aggregator
        self.channel = channel
        self.horizon = timedelta(hours=horizon_hours)
        self.rate_limiter = rate_limiter or SlidingWindowRateLimiter(
            max_cancellations_per_hour, CAP_WINDOW_SECONDS
        )
        self.counters = {"cancelled": 0, "escalated": 0, "deferred": 0, "unrecorded": 0}
        # cancelled upstream but still active locally; not retried
        self._unrecorded: dict[UUID, Optional[str]] = {}

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        session_factory: async_sessionmaker[AsyncSession],
        aggregator: SupplierAggregator,
        channel: ChannelPushClient,
        notifier: Optional[Notifier] = None,
    ) -> "LifecycleWorker":
        return cls(
            session_factory,
            aggregator,
            channel,
            notifier,
            interval_seconds=settings.lifecycle_worker_interval_seconds,
            enabled=settings.lifecycle_worker_enabled,
            max_unhealthy_checks=settings.lifecycle_worker_max_unhealthy_checks,
            horizon_hours=settings.lifecycle_horizon_hours,
            max_cancellations_per_hour=settings.lifecycle_max_cancellations_per_hour,
        )

    def details(self) -> dict[str, Any]:
        return {
            **self.counters,
            "cancellations_remaining_this_hour": self.rate_limiter.remaining(),
            "unrecorded_cancellations": {str(k): v for k, v in self._unrecorded.items()},
        }

    async def process(self) -> None:
        async with self.session_factory() as session:
            candidates = await BookingService(session).list_cancellation_candidates(utcnow() + self.horizon)
        candidates = [b for b in candidates if b.id not in self._unrecorded]

        if not candidates:
            logger.debug("No bookings to cancel", extra={"worker": self.name})
            return

        logger.info(f"Found {len(candidates)} bookings to cancel", extra={"worker": self.name})

        for index, booking in enumerate(candidates):
            if not self.rate_limiter.allowed():
                deferred = len(candidates) - index
                self.counters["deferred"] += deferred
                logger.warning(
                    "Hourly cancellation cap reached",
                    extra={"limit": self.rate_limiter.max_events, "deferred": deferred}
                )
                break

            await self._cancel(booking)

    async def _cancel_upstream(self, booking: Booking) -> CancelResult:
        """Cancel with the supplier, or locally for manual bookings."""
        if not booking.provider:
            return CancelResult(success=True, supplier="manual", cancellation_id=LOCAL_CANCELLATION_ID)

        client = self.aggregator.client_for(booking.provider)
        if client is None:
            raise CancellationError(f"Unknown provider {booking.provider!r}")
        if not client.is_configured():
            raise CancellationError(f"Provider {booking.provider!r} is not configured")
        if not booking.confirmation_ref:
            raise CancellationError("Booking has no supplier confirmation reference")

        return await client.cancel(booking.confirmation_ref)

    async def _cancel(self, booking: Booking) -> bool:
        hotel_name = booking.hotel.name if booking.hotel else None
        logger.info(
            "Cancelling booking",
            extra={
                "booking_id": str(booking.id),
                "hotel": hotel_name,
                "provider": booking.provider,
                "deadline": booking.cancellation_deadline.isoformat() if booking.cancellation_deadline else None,
            }
        )

        try:
            result = await self._cancel_upstream(booking)
            if not result.success:
                raise CancellationError(result.error or "Supplier cancellation failed")
        except Exception as e:
            self.counters["escalated"] += 1
            metrics_collector.record_cancellation(success=False)
            logger.error(
                f"Failed to cancel booking: {e}",
                exc_info=not isinstance(e, CancellationError),
                extra={"booking_id": str(booking.id), "hotel": hotel_name}
            )
            await self._notify(
                f"*MANUAL CANCELLATION REQUIRED*\nBooking: {booking.id}\nHotel: {hotel_name}\n"
                f"Booking Ref: {booking.confirmation_ref}\nProvider: {booking.provider}\n"
                f"Deadline: {booking.cancellation_deadline}\nError: {e}"
            )
            return False

        self.rate_limiter.record()

        try:
            async with self.session_factory() as session:
                await BookingService(session).record_cancellation(
                    booking,
                    reason=CANCELLATION_REASON,
                    supplier_cancellation_id=result.cancellation_id or "AUTO",
                    refund_amount=result.refund_amount,
                    fee=result.fee,
                )
        except Exception as e:
            self._unrecorded[booking.id] = result.cancellation_id
            self.counters["unrecorded"] += 1
            logger.critical(
                f"Cancelled upstream but not recorded: {e}",
                exc_info=True,
                extra={
                    "booking_id": str(booking.id),
                    "hotel": hotel_name,
                    "supplier_cancellation_id": result.cancellation_id,
                }
            )
            await self._notify(
                f"*Cancellation Not Recorded*\nBooking: {booking.id}\nHotel: {hotel_name}\n"
                f"Booking Ref: {booking.confirmation_ref}\nProvider: {booking.provider or 'manual'}\n"
                f"Cancellation Ref: {result.cancellation_id}\n"
                f"The booking is cancelled with the supplier but local records are out of sync.\n"
                f"Error: {e}"
            )
            await self._close_downstream(booking)
            return False

        self.counters["cancelled"] += 1
        metrics_collector.record_cancellation(success=True)
        await self._close_downstream(booking)

        logger.info("Booking cancelled", extra={"booking_id": str(booking.id), "hotel": hotel_name})
        await self._notify(
            f"*Auto-Cancellation Success*\nBooking: {booking.id}\nHotel: {hotel_name}\n"
            f"Provider: {booking.provider or 'manual'}\nPrice: {booking.price}\n"
            f"Deadline: {booking.cancellation_deadline}"
        )
        return True

    async def _close_downstream(self, booking: Booking) -> None:
        """Best-effort zero-availability push for a cancelled booking."""
        hotel_code = booking.hotel.channel_hotel_code if booking.hotel else None
        room_code = booking.category.channel_room_code if booking.category else None
        if not hotel_code or not room_code:
            return

        try:
            await self.channel.push_availability(AvailabilityUpdate(
                hotel_code=hotel_code,
                room_code=room_code,
                rate_plan_code=booking.hotel.channel_rate_plan_code,
                start_date=booking.start_date,
                end_date=booking.end_date,
                booking_id=booking.id,
                available=0,
            ))
        except Exception as e:
            logger.error(
                f"Channel close failed (non-blocking): {e}",
                exc_info=True,
                extra={"booking_id": str(booking.id)}
            )
