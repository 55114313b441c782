"""Acquisition worker: searches suppliers and buys rooms for pending opportunities."""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Iterable, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..clients.aggregator import SupplierAggregator
from ..clients.channel import ChannelPushClient
from ..clients.notifications import Notifier
from ..core.clock import utcnow
from ..core.config import Settings
from ..core.exceptions import PurchaseError, SupplierError
from ..core.observability import metrics_collector
from ..core.rate_limit import SlidingWindowRateLimiter
from ..models.booking import Booking, BookingStatus, Hold
from ..models.opportunity import Opportunity
from ..schemas.channel import BookingPush
from ..schemas.supplier import (
    ConfirmRequest,
    GuestDetails,
    HoldRequest,
    SearchCriteria,
    SupplierHotel,
    SupplierRoom,
)
from ..services.booking_service import BookingService
from ..services.opportunity_service import OpportunityService
from ..services.push_log_service import PushLogService
from .base import BaseWorker

logger = logging.getLogger(__name__)

PURCHASE_WINDOW_SECONDS = 60.0


@dataclass(frozen=True)
class RoomChoice:
    room: SupplierRoom
    hotel: SupplierHotel


def _matches(wanted: Optional[str], offered: Optional[str]) -> bool:
    if not wanted or not offered:
        return True
    return wanted.casefold() in offered.casefold()


def has_free_cancellation(room: SupplierRoom, now: datetime, min_notice: timedelta) -> bool:
    """
    True if the room can be cancelled for free far enough ahead.

    Rooms without policy information are accepted. A penalty on the first
    cancellation frame, or a free-cancellation deadline sooner than
    ``now + min_notice``, rejects the room.
    """
    policy = room.cancellation_policy
    if policy is None:
        return True

    if policy.frames:
        penalty = policy.frames[0].penalty
        if penalty is not None and (penalty.amount or 0) > 0:
            return False

    if policy.deadline is not None and policy.deadline < now + min_notice:
        return False

    return True


def select_room(
    hotels: Iterable[SupplierHotel],
    max_price: float,
    category: Optional[str] = None,
    board: Optional[str] = None,
    now: Optional[datetime] = None,
    min_notice: timedelta = timedelta(hours=24),
) -> Optional[RoomChoice]:
    """
    Cheapest room that satisfies the opportunity.

    Category and board are matched case-insensitively by substring, only
    when both sides name one. Rooms must have a price at or below
    ``max_price`` and free cancellation (see :func:`has_free_cancellation`).
    """
    now = now or utcnow()
    candidates: list[RoomChoice] = []

    for hotel in hotels:
        for room in hotel.rooms:
            if not _matches(category, room.category_name):
                continue
            if not _matches(board, room.board_name):
                continue
            if not has_free_cancellation(room, now, min_notice):
                continue
            if room.price is None or room.price > max_price:
                continue
            candidates.append(RoomChoice(room=room, hotel=hotel))

    if not candidates:
        return None
    return min(candidates, key=lambda choice: choice.room.price)


class AcquisitionWorker(BaseWorker):
    """
    Buys rooms for standing opportunities.

    Each tick takes the pending opportunity touched longest ago, searches
    all suppliers, picks the cheapest acceptable room and, unless in
    dry-run mode, holds and confirms it, records the purchase in a single
    transaction and publishes it downstream. Purchases are capped by a
    sliding one-minute window, counted as soon as the supplier confirms.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        aggregator: SupplierAggregator,
        channel: ChannelPushClient,
        notifier: Optional[Notifier] = None,
        interval_seconds: float = 30,
        enabled: bool = False,
        max_unhealthy_checks: int = 3,
        dry_run: bool = True,
        max_purchases_per_minute: int = 1,
        min_free_cancellation_hours: float = 24,
        rate_limiter: Optional[SlidingWindowRateLimiter] = None,
        guest: Optional[GuestDetails] = None,
    ):
        super().__init__(
            name="acquisition",
            interval_seconds=interval_seconds,
            enabled=enabled,
            max_unhealthy_checks=max_unhealthy_checks,
            notifier=notifier,
        )
        self.session_factory = session_factory
        self.aggregator = aggregator
        self.channel = channel
        self.dry_run = dry_run
        self.min_notice = timedelta(hours=min_free_cancellation_hours)
        self.rate_limiter = rate_limiter or SlidingWindowRateLimiter(
            max_purchases_per_minute, PURCHASE_WINDOW_SECONDS
        )
        self.guest = guest or GuestDetails(first_name="Room", last_name="Broker")

        self.counters = {"searched": 0, "purchased": 0, "skipped": 0, "dry_run_actions": 0}
        self.last_purchase: Optional[dict[str, Any]] = None
        # confirmed upstream but not written locally; never offered again
        self._unrecorded: dict[UUID, Optional[str]] = {}

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        session_factory: async_sessionmaker[AsyncSession],
        aggregator: SupplierAggregator,
        channel: ChannelPushClient,
        notifier: Optional[Notifier] = None,
    ) -> "AcquisitionWorker":
        return cls(
            session_factory,
            aggregator,
            channel,
            notifier,
            interval_seconds=settings.acquisition_worker_interval_seconds,
            enabled=settings.acquisition_worker_enabled,
            max_unhealthy_checks=settings.acquisition_worker_max_unhealthy_checks,
            dry_run=settings.acquisition_dry_run,
            max_purchases_per_minute=settings.acquisition_max_purchases_per_minute,
            min_free_cancellation_hours=settings.acquisition_min_free_cancellation_hours,
        )

    def details(self) -> dict[str, Any]:
        return {
            **self.counters,
            "dry_run": self.dry_run,
            "purchases_remaining_this_minute": self.rate_limiter.remaining(),
            "last_purchase": self.last_purchase,
            "unrecorded_purchases": {str(k): v for k, v in self._unrecorded.items()},
        }

    async def _touch(self, opportunity_id: UUID) -> None:
        """Send the opportunity to the back of the queue."""
        try:
            async with self.session_factory() as session:
                await OpportunityService(session).touch(opportunity_id)
        except Exception as e:
            logger.error(
                f"Failed to update opportunity timestamp: {e}",
                exc_info=True,
                extra={"opportunity_id": str(opportunity_id)}
            )

    async def _skip(self, opportunity: Opportunity, reason: str) -> None:
        self.counters["skipped"] += 1
        logger.info(
            f"Skipping opportunity: {reason}",
            extra={"opportunity_id": str(opportunity.id), "hotel": opportunity.hotel.name}
        )
        await self._touch(opportunity.id)

    async def process(self) -> None:
        if not self.rate_limiter.allowed():
            logger.debug("Purchase rate limit reached, waiting", extra={"worker": self.name})
            return

        async with self.session_factory() as session:
            opportunity = await OpportunityService(session).get_next_pending(exclude=self._unrecorded)

        if opportunity is None:
            return

        self.counters["searched"] += 1
        hotel = opportunity.hotel
        logger.info(
            "Processing opportunity",
            extra={
                "opportunity_id": str(opportunity.id),
                "hotel": hotel.name,
                "dates": f"{opportunity.start_date} - {opportunity.end_date}",
                "buy_price": opportunity.buy_price,
                "push_price": opportunity.push_price,
                "dry_run": self.dry_run,
            }
        )

        if not hotel.supplier_hotel_id:
            await self._skip(opportunity, "hotel has no supplier mapping")
            return

        search = await self.aggregator.search(SearchCriteria(
            check_in=opportunity.start_date,
            check_out=opportunity.end_date,
            hotel_ids=[hotel.supplier_hotel_id],
        ))
        if not search.success or not search.merged:
            await self._skip(opportunity, "no search results")
            return

        choice = select_room(
            search.merged,
            max_price=opportunity.buy_price,
            category=opportunity.category.name if opportunity.category else None,
            board=opportunity.board.name if opportunity.board else None,
            min_notice=self.min_notice,
        )
        if choice is None:
            await self._skip(opportunity, "no valid rooms after filtering")
            return

        margin = opportunity.push_price - choice.room.price

        if self.dry_run:
            self.counters["dry_run_actions"] += 1
            metrics_collector.record_purchase(dry_run=True)
            logger.info(
                "DRY RUN - would purchase",
                extra={
                    "opportunity_id": str(opportunity.id),
                    "hotel": hotel.name,
                    "room_price": choice.room.price,
                    "buy_target": opportunity.buy_price,
                    "push_price": opportunity.push_price,
                    "margin": margin,
                    "supplier": choice.room.supplier,
                }
            )
            await self._touch(opportunity.id)
            return

        try:
            await self._purchase(opportunity, choice)
        except Exception as e:
            await self._notify(
                f"*Room Purchase Failed*\nHotel: {hotel.name}\n"
                f"Opportunity: {opportunity.id}\nError: {e}"
            )
            await self._touch(opportunity.id)
            raise

    async def _purchase(self, opportunity: Opportunity, choice: RoomChoice) -> Booking:
        """
        Hold, confirm, persist, publish. Supplier calls come before any write.

        A purchase confirmed upstream that cannot be written locally raises
        :class:`PurchaseError`; its opportunity is then skipped for the life
        of the worker so the room is not bought twice.
        """
        room = choice.room
        client = self.aggregator.client_for(room.supplier)
        if client is None:
            raise PurchaseError(f"No client for supplier {room.supplier!r}")

        logger.info(
            "Placing hold",
            extra={"opportunity_id": str(opportunity.id), "supplier": client.name, "price": room.price}
        )
        hold = await client.hold(HoldRequest(
            hotel_id=choice.hotel.hotel_id,
            room_id=room.room_id,
            rate_id=room.rate_id,
            search_token=choice.hotel.search_token,
            check_in=opportunity.start_date,
            check_out=opportunity.end_date,
        ))
        if not hold.success:
            raise SupplierError(client.name, "Hold", hold.error)

        confirmation = await client.confirm(ConfirmRequest(
            hold_id=hold.hold_id,
            token=hold.token or hold.hold_id,
            guest=self.guest,
        ))
        if not confirmation.success:
            raise SupplierError(client.name, "Confirm", confirmation.error)

        # the room is bought from here on, whatever happens to the local writes
        self.rate_limiter.record()
        confirmation_ref = confirmation.booking_id or confirmation.confirmation_number

        policy = room.cancellation_policy
        cancellation_type = hold.cancellation_type or (policy.type if policy else None) or "free"
        cancellation_deadline = hold.cancellation_deadline or (policy.deadline if policy else None)

        try:
            booking = await self._record_purchase(
                opportunity,
                Hold(
                    opportunity_id=opportunity.id,
                    hotel_id=opportunity.hotel_id,
                    category_id=opportunity.category_id,
                    board_id=opportunity.board_id,
                    start_date=opportunity.start_date,
                    end_date=opportunity.end_date,
                    price=hold.price if hold.price is not None else room.price,
                    supplier_hold_id=hold.hold_id,
                    token=hold.token,
                    cancellation_type=cancellation_type,
                    cancellation_deadline=cancellation_deadline,
                    provider=client.name,
                ),
                Booking(
                    opportunity_id=opportunity.id,
                    hotel_id=opportunity.hotel_id,
                    category_id=opportunity.category_id,
                    board_id=opportunity.board_id,
                    start_date=opportunity.start_date,
                    end_date=opportunity.end_date,
                    confirmation_ref=confirmation_ref,
                    supplier_reference=confirmation.supplier_reference,
                    price=room.price,
                    last_price=room.price,
                    push_price=opportunity.push_price,
                    is_active=True,
                    is_sold=False,
                    status=BookingStatus.CONFIRMED.value,
                    cancellation_type=cancellation_type,
                    cancellation_deadline=cancellation_deadline,
                    provider=client.name,
                ),
            )
        except Exception as e:
            self._unrecorded[opportunity.id] = confirmation_ref
            logger.critical(
                f"Confirmed booking could not be recorded: {e}",
                exc_info=True,
                extra={
                    "opportunity_id": str(opportunity.id),
                    "supplier": client.name,
                    "confirmation_ref": confirmation_ref,
                }
            )
            raise PurchaseError(
                f"Booking {confirmation_ref} confirmed with {client.name} but not recorded: {e}"
            ) from e

        await self._publish(opportunity, booking)

        margin = opportunity.push_price - room.price
        self.counters["purchased"] += 1
        self.last_purchase = {
            "opportunity_id": str(opportunity.id),
            "booking_id": str(booking.id),
            "hotel": opportunity.hotel.name,
            "price": room.price,
            "push_price": opportunity.push_price,
            "margin": round(margin, 2),
            "time": utcnow().isoformat(),
        }
        metrics_collector.record_purchase(dry_run=False)

        logger.info("Purchase complete", extra=self.last_purchase)
        await self._notify(
            f"*Room Purchased*\nHotel: {opportunity.hotel.name}\n"
            f"Opportunity: {opportunity.id}\nBooking: {booking.id}\n"
            f"Buy: {room.price}\nPush: {opportunity.push_price}\nMargin: {margin:.2f}\n"
            f"Dates: {opportunity.start_date} - {opportunity.end_date}"
        )
        return booking

    async def _record_purchase(self, opportunity: Opportunity, hold: Hold, booking: Booking) -> Booking:
        """Hold, booking, opportunity link and queue item in one commit."""
        async with self.session_factory() as session:
            async with session.begin():
                booking = await BookingService(session).add_purchase(hold, booking)
                await OpportunityService(session).mark_purchased(opportunity.id, booking.id)
                await PushLogService(session).enqueue(booking.id, opportunity.id)
        return booking

    async def _publish(self, opportunity: Opportunity, booking: Booking) -> None:
        """Push the new booking downstream. Failures surface through the audit."""
        hotel_code = opportunity.hotel.channel_hotel_code
        room_code = opportunity.category.channel_room_code if opportunity.category else None
        if not hotel_code or not room_code:
            logger.warning(
                "Booking has no channel mapping, not pushed",
                extra={"booking_id": str(booking.id), "hotel": opportunity.hotel.name}
            )
            return

        try:
            result = await self.channel.push_booking(BookingPush(
                hotel_code=hotel_code,
                room_code=room_code,
                rate_plan_code=opportunity.hotel.channel_rate_plan_code,
                start_date=opportunity.start_date,
                end_date=opportunity.end_date,
                booking_id=booking.id,
                opportunity_id=opportunity.id,
                price=opportunity.push_price,
            ))
            if result.success:
                async with self.session_factory() as session:
                    await PushLogService(session).mark_pushed(booking.id)
            else:
                logger.error(
                    f"Channel push failed (non-blocking): {result.error}",
                    extra={"booking_id": str(booking.id)}
                )
        except Exception as e:
            logger.error(
                f"Channel push failed (non-blocking): {e}",
                exc_info=True,
                extra={"booking_id": str(booking.id)}
            )
