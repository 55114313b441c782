"""Hold, booking and cancellation persistence operations."""

import logging
from datetime import date, datetime
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..core.clock import utcnow
from ..models.booking import Booking, BookingStatus, Hold
from ..models.cancellation import CancellationRecord

logger = logging.getLogger(__name__)


class BookingService:
    """Service for booking-related operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def add_purchase(self, hold: Hold, booking: Booking) -> Booking:
        """
        Stage a confirmed purchase as a Hold and its Booking.

        Flushes but does not commit. The caller owns the transaction so the
        opportunity update and queue item land in the same commit.

        Args:
            hold: Unsaved hold
            booking: Unsaved booking; its ``hold_id`` is set here

        Returns:
            The flushed booking, with its id assigned
        """
        self.db.add(hold)
        await self.db.flush()

        booking.hold_id = hold.id
        self.db.add(booking)
        await self.db.flush()

        logger.info(
            "Purchase staged",
            extra={
                "hold_id": str(hold.id),
                "booking_id": str(booking.id),
                "opportunity_id": str(booking.opportunity_id) if booking.opportunity_id else None,
                "price": booking.price,
                "push_price": booking.push_price,
                "provider": booking.provider,
            }
        )
        return booking

    async def get(self, booking_id: UUID) -> Booking | None:
        stmt = (
            select(Booking)
            .options(selectinload(Booking.hotel), selectinload(Booking.category))
            .where(Booking.id == booking_id)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def list_cancellation_candidates(self, deadline_before: datetime) -> list[Booking]:
        """
        Active, unsold bookings whose cancellation deadline is before the cutoff.

        Ordered by deadline, nearest first.
        """
        stmt = (
            select(Booking)
            .options(
                selectinload(Booking.hotel),
                selectinload(Booking.category),
            )
            .where(
                Booking.is_active.is_(True),
                Booking.is_sold.is_(False),
                Booking.cancellation_deadline.is_not(None),
                Booking.cancellation_deadline <= deadline_before,
            )
            .order_by(Booking.cancellation_deadline.asc())
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def list_active_with_details(self) -> list[Booking]:
        """All active bookings with hotel, category and board loaded."""
        stmt = (
            select(Booking)
            .options(
                selectinload(Booking.hotel),
                selectinload(Booking.category),
                selectinload(Booking.board),
            )
            .where(Booking.is_active.is_(True))
            .order_by(Booking.start_date.asc())
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def list_recently_cancelled(self, since: datetime) -> list[Booking]:
        """
        Supplier bookings with a cancellation recorded since the cutoff.

        Manual bookings and bookings without a confirmation reference are
        left out since there is nothing to ask the supplier about.
        """
        cancelled_ids = select(CancellationRecord.booking_id).where(CancellationRecord.created_at >= since)
        stmt = (
            select(Booking)
            .options(selectinload(Booking.hotel))
            .where(
                Booking.id.in_(cancelled_ids),
                Booking.provider.is_not(None),
                Booking.confirmation_ref.is_not(None),
            )
            .order_by(Booking.updated_at.desc())
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def list_upcoming_supplier_bookings(self, from_date: date, limit: int) -> list[Booking]:
        """Active supplier bookings starting on or after ``from_date``, soonest first."""
        stmt = (
            select(Booking)
            .options(selectinload(Booking.hotel))
            .where(
                Booking.is_active.is_(True),
                Booking.provider.is_not(None),
                Booking.confirmation_ref.is_not(None),
                Booking.start_date >= from_date,
            )
            .order_by(Booking.start_date.asc())
            .limit(limit)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def record_cancellation(
        self,
        booking: Booking,
        reason: str,
        supplier_cancellation_id: str | None,
        refund_amount: float | None = None,
        fee: float | None = None,
    ) -> CancellationRecord:
        """
        Write the cancellation record and deactivate the booking.

        Only called after the supplier confirmed the cancellation, so both
        writes share one transaction.
        """
        record = CancellationRecord(
            booking_id=booking.id,
            hold_id=booking.hold_id,
            reason=reason,
            refund_amount=refund_amount,
            fee=fee,
            supplier_cancellation_id=supplier_cancellation_id,
        )
        self.db.add(record)
        await self.db.execute(
            update(Booking)
            .where(Booking.id == booking.id)
            .values(is_active=False, status=BookingStatus.CANCELLED.value, updated_at=utcnow())
        )
        await self.db.commit()

        logger.info(
            "Booking cancelled",
            extra={
                "booking_id": str(booking.id),
                "supplier_cancellation_id": supplier_cancellation_id,
                "reason": reason,
            }
        )
        return record
