"""Push verification worker: checks that queued bookings reached the channel at the right price."""

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..clients.channel import ChannelPushClient
from ..clients.notifications import Notifier
from ..core.clock import utcnow
from ..core.config import Settings
from ..core.observability import metrics_collector
from ..models.booking import Booking
from ..models.push_log import PushLogEntry, PushQueueItem, PushType, QueueStatus
from ..schemas.channel import BookingPush
from ..services.booking_service import BookingService
from ..services.push_log_service import PushLogService
from .audit_worker import pushed_amount, truncate_price
from .base import BaseWorker

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Verification:
    status: QueueStatus
    message: Optional[str] = None
    repushed: bool = False


class PushVerificationWorker(BaseWorker):
    """
    Works through the push queue, oldest item first.

    An item is verified when its booking's latest successful rate push
    carries the resale price, compared truncated to one decimal. A booking
    with no successful rate push is pushed once more. Anything else marks
    the item as an error and alerts an operator; errored items are not
    picked up again.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        channel: ChannelPushClient,
        notifier: Optional[Notifier] = None,
        interval_seconds: float = 60,
        enabled: bool = False,
        max_unhealthy_checks: int = 3,
        batch_size: int = 10,
        settle_seconds: float = 60,
    ):
        super().__init__(
            name="verification",
            interval_seconds=interval_seconds,
            enabled=enabled,
            max_unhealthy_checks=max_unhealthy_checks,
            notifier=notifier,
        )
        self.session_factory = session_factory
        self.channel = channel
        self.batch_size = batch_size
        self.settle = timedelta(seconds=settle_seconds)
        self.counters = {"verified": 0, "repushed": 0, "errors": 0}

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        session_factory: async_sessionmaker[AsyncSession],
        channel: ChannelPushClient,
        notifier: Optional[Notifier] = None,
    ) -> "PushVerificationWorker":
        return cls(
            session_factory,
            channel,
            notifier,
            interval_seconds=settings.verification_worker_interval_seconds,
            enabled=settings.verification_worker_enabled,
            max_unhealthy_checks=settings.verification_worker_max_unhealthy_checks,
            batch_size=settings.verification_batch_size,
            settle_seconds=settings.verification_settle_seconds,
        )

    def details(self) -> dict[str, Any]:
        return {**self.counters, "batch_size": self.batch_size}

    async def process(self) -> None:
        async with self.session_factory() as session:
            items = await PushLogService(session).list_unverified(self.batch_size, utcnow() - self.settle)

        if not items:
            logger.debug("No queued pushes to verify", extra={"worker": self.name})
            return

        for item in items:
            await self._handle(item)

    async def _handle(self, item: PushQueueItem) -> None:
        async with self.session_factory() as session:
            booking = await BookingService(session).get(item.booking_id) if item.booking_id else None
            latest = await PushLogService(session).latest_successful([booking.id]) if booking else {}

        outcome = await self.verify(booking, latest.get(booking.id) if booking else None)

        async with self.session_factory() as session:
            await PushLogService(session).set_verification(item.id, outcome.status, outcome.message)

        metrics_collector.record_push_verification(outcome.status.value)
        if outcome.repushed:
            self.counters["repushed"] += 1

        if outcome.status == QueueStatus.VERIFIED:
            self.counters["verified"] += 1
            return

        self.counters["errors"] += 1
        hotel_name = booking.hotel.name if booking and booking.hotel else "Unknown"
        dates = f"{booking.start_date} - {booking.end_date}" if booking else "Unknown"
        logger.warning(
            f"Push verification failed: {outcome.message}",
            extra={"queue_item_id": str(item.id), "booking_id": str(item.booking_id)}
        )
        await self._notify(
            f"*Push Verification Failed*\nHotel: {hotel_name}\nDates: {dates}\n"
            f"Booking: {item.booking_id}\nError: {outcome.message}"
        )

    async def verify(
        self, booking: Optional[Booking], latest: Optional[dict[PushType, PushLogEntry]]
    ) -> Verification:
        """
        Decide the outcome for one queued booking, re-pushing it if it never
        reached the channel.
        """
        if booking is None:
            return Verification(QueueStatus.ERROR, "Booking not found")
        if not booking.is_active:
            return Verification(QueueStatus.VERIFIED, "Booking no longer active")

        rate_entry = (latest or {}).get(PushType.RATE)
        if rate_entry is None:
            return await self._repush(booking)

        if booking.push_price is None:
            return Verification(QueueStatus.ERROR, "Booking has no resale price")
        pushed = pushed_amount(rate_entry)
        if pushed is None:
            return Verification(QueueStatus.ERROR, "Pushed rate carries no amount")

        expected = truncate_price(booking.push_price)
        actual = truncate_price(pushed)
        if expected != actual:
            return Verification(QueueStatus.ERROR, f"Price mismatch: expected {expected}, pushed {actual}")
        return Verification(QueueStatus.VERIFIED)

    async def _repush(self, booking: Booking) -> Verification:
        hotel = booking.hotel
        hotel_code = hotel.channel_hotel_code if hotel else None
        room_code = booking.category.channel_room_code if booking.category else None
        if not hotel_code or not room_code:
            return Verification(QueueStatus.ERROR, "No successful push and no channel mapping to push with")
        if booking.push_price is None:
            return Verification(QueueStatus.ERROR, "No successful push and no resale price to push")

        logger.info("Re-pushing unpublished booking", extra={"booking_id": str(booking.id), "hotel": hotel.name})
        try:
            result = await self.channel.push_booking(BookingPush(
                hotel_code=hotel_code,
                room_code=room_code,
                rate_plan_code=hotel.channel_rate_plan_code or "STD",
                start_date=booking.start_date,
                end_date=booking.end_date,
                booking_id=booking.id,
                opportunity_id=booking.opportunity_id,
                price=booking.push_price,
            ))
        except Exception as e:
            logger.error(
                f"Re-push failed: {e}",
                exc_info=True,
                extra={"booking_id": str(booking.id)}
            )
            return Verification(QueueStatus.ERROR, f"Re-push failed: {e}")

        if not result.success:
            return Verification(QueueStatus.ERROR, f"Re-push failed: {result.error}")

        async with self.session_factory() as session:
            await PushLogService(session).mark_pushed(booking.id)
        return Verification(QueueStatus.VERIFIED, "Re-pushed to channel", repushed=True)
