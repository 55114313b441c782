"""Push log and push queue persistence operations."""

import logging
from datetime import datetime
from typing import Iterable
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.clock import utcnow
from ..models.push_log import PushLogEntry, PushQueueItem, PushType, QueueStatus

logger = logging.getLogger(__name__)


class PushLogService:
    """Service for the append-only push log and the push queue."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def record(self, entry: PushLogEntry) -> PushLogEntry:
        self.db.add(entry)
        await self.db.commit()
        return entry

    async def latest_successful(
        self, booking_ids: Iterable[UUID]
    ) -> dict[UUID, dict[PushType, PushLogEntry]]:
        """
        Latest successful push of each type per booking.

        Args:
            booking_ids: Bookings to look up

        Returns:
            Mapping booking id -> push type -> latest successful entry.
            Bookings without any successful push are absent.
        """
        ids = list(booking_ids)
        if not ids:
            return {}

        stmt = (
            select(PushLogEntry)
            .where(PushLogEntry.booking_id.in_(ids), PushLogEntry.success.is_(True))
            .order_by(PushLogEntry.created_at.asc())
        )
        result = await self.db.execute(stmt)

        latest: dict[UUID, dict[PushType, PushLogEntry]] = {}
        for entry in result.scalars():
            latest.setdefault(entry.booking_id, {})[PushType(entry.push_type)] = entry
        return latest

    async def enqueue(self, booking_id: UUID, opportunity_id: UUID | None = None) -> PushQueueItem:
        """Stage a queue item for a new booking. Part of the purchase transaction; does not commit."""
        item = PushQueueItem(booking_id=booking_id, opportunity_id=opportunity_id)
        self.db.add(item)
        await self.db.flush()
        return item

    async def mark_pushed(self, booking_id: UUID) -> None:
        await self.db.execute(
            update(PushQueueItem)
            .where(PushQueueItem.booking_id == booking_id, PushQueueItem.is_pushed.is_(False))
            .values(is_pushed=True, pushed_at=utcnow())
        )
        await self.db.commit()

    async def list_unverified(self, limit: int, created_before: datetime) -> list[PushQueueItem]:
        """Queued items created before the cutoff and awaiting verification, oldest first."""
        stmt = (
            select(PushQueueItem)
            .where(PushQueueItem.status == QueueStatus.QUEUED.value, PushQueueItem.created_at < created_before)
            .order_by(PushQueueItem.created_at.asc())
            .limit(limit)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def set_verification(self, item_id: UUID, status: QueueStatus, message: str | None = None) -> None:
        """
        Record the outcome of verifying a queue item.

        Args:
            item_id: Queue item
            status: ``VERIFIED`` or ``ERROR``
            message: Reason shown to operators for an error
        """
        await self.db.execute(
            update(PushQueueItem)
            .where(PushQueueItem.id == item_id)
            .values(status=status.value, message=message, verified_at=utcnow())
        )
        await self.db.commit()

        logger.info(
            "Push queue item verified",
            extra={"queue_item_id": str(item_id), "status": status.value, "message": message}
        )
