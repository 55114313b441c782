"""Opportunity model definition."""

from datetime import date, datetime
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import Boolean, CheckConstraint, Date, ForeignKey, Integer, Numeric, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.clock import utcnow
from ..core.database import Base

if TYPE_CHECKING:
    from .hotel import Board, Hotel, RoomCategory


class Opportunity(Base):
    """
    Standing buy configuration for a hotel, stay dates and room type.

    Opportunities are never deleted; ``is_active`` is cleared instead.
    ``updated_at`` doubles as the acquisition queue position: the oldest
    pending opportunity is processed next.
    """

    __tablename__ = "opportunities"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    hotel_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("hotels.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    category_id: Mapped[UUID | None] = mapped_column(Uuid, ForeignKey("room_categories.id"), nullable=True)
    board_id: Mapped[UUID | None] = mapped_column(Uuid, ForeignKey("boards.id"), nullable=True)

    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)

    buy_price: Mapped[float] = mapped_column(Numeric(12, 2, asdecimal=False), nullable=False)
    push_price: Mapped[float] = mapped_column(Numeric(12, 2, asdecimal=False), nullable=False)
    max_rooms: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)
    is_purchased: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)
    # Set once the purchase completes; no FK so the row can be written first.
    booking_id: Mapped[UUID | None] = mapped_column(Uuid, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        nullable=False,
        default=utcnow,
        server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        nullable=False,
        default=utcnow,
        server_default=func.now(),
        index=True
    )

    __table_args__ = (
        CheckConstraint("end_date > start_date", name="ck_opportunity_dates"),
        CheckConstraint("max_rooms > 0", name="ck_opportunity_max_rooms_positive"),
    )

    hotel: Mapped["Hotel"] = relationship("Hotel")
    category: Mapped["RoomCategory | None"] = relationship("RoomCategory")
    board: Mapped["Board | None"] = relationship("Board")

    def __repr__(self) -> str:
        return (
            f"<Opportunity(id={self.id}, hotel_id={self.hotel_id}, "
            f"{self.start_date}..{self.end_date}, buy={self.buy_price}, push={self.push_price})>"
        )
