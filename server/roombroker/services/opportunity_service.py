"""Opportunity persistence operations used by the acquisition worker."""

import logging
from typing import Iterable
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..core.clock import utcnow
from ..models.opportunity import Opportunity

logger = logging.getLogger(__name__)


class OpportunityService:
    """Service for opportunity-related operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_next_pending(self, exclude: Iterable[UUID] = ()) -> Opportunity | None:
        """
        Return the pending opportunity that was touched longest ago.

        Pending means active and not yet purchased. Hotel, category and board
        are loaded eagerly.

        Args:
            exclude: Opportunity ids to pass over
        """
        stmt = (
            select(Opportunity)
            .options(
                selectinload(Opportunity.hotel),
                selectinload(Opportunity.category),
                selectinload(Opportunity.board),
            )
            .where(Opportunity.is_active.is_(True), Opportunity.is_purchased.is_(False))
            .order_by(Opportunity.updated_at.asc())
            .limit(1)
        )
        excluded = list(exclude)
        if excluded:
            stmt = stmt.where(Opportunity.id.not_in(excluded))
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get(self, opportunity_id: UUID) -> Opportunity | None:
        result = await self.db.execute(select(Opportunity).where(Opportunity.id == opportunity_id))
        return result.scalar_one_or_none()

    async def touch(self, opportunity_id: UUID) -> None:
        """Move the opportunity to the back of the acquisition queue."""
        await self.db.execute(
            update(Opportunity)
            .where(Opportunity.id == opportunity_id)
            .values(updated_at=utcnow())
        )
        await self.db.commit()

    async def mark_purchased(self, opportunity_id: UUID, booking_id: UUID) -> None:
        """
        Flag the opportunity as purchased and link its booking.

        Part of the purchase transaction; does not commit.

        Args:
            opportunity_id: Opportunity that was bought
            booking_id: Booking created by the purchase
        """
        await self.db.execute(
            update(Opportunity)
            .where(Opportunity.id == opportunity_id)
            .values(is_purchased=True, booking_id=booking_id, updated_at=utcnow())
        )

        logger.info(
            "Opportunity staged as purchased",
            extra={"opportunity_id": str(opportunity_id), "booking_id": str(booking_id)}
        )
