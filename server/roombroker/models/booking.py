"""Booking and Hold model definitions."""

from datetime import date, datetime
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import Boolean, Date, ForeignKey, Numeric, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.clock import utcnow
from ..core.database import Base

if TYPE_CHECKING:
    from .hotel import Board, Hotel, RoomCategory


class BookingStatus(str, Enum):
    """Booking status enumeration."""
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class Hold(Base):
    """
    Price and availability lock obtained from a supplier before purchase.

    Holds are immutable once written. Manual holds have no opportunity and
    no provider.
    """

    __tablename__ = "holds"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    opportunity_id: Mapped[UUID | None] = mapped_column(
        Uuid,
        ForeignKey("opportunities.id"),
        nullable=True,
        index=True
    )
    hotel_id: Mapped[UUID] = mapped_column(Uuid, ForeignKey("hotels.id"), nullable=False, index=True)
    category_id: Mapped[UUID | None] = mapped_column(Uuid, ForeignKey("room_categories.id"), nullable=True)
    board_id: Mapped[UUID | None] = mapped_column(Uuid, ForeignKey("boards.id"), nullable=True)

    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)

    price: Mapped[float] = mapped_column(Numeric(12, 2, asdecimal=False), nullable=False)
    supplier_hold_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    token: Mapped[str | None] = mapped_column(String(512), nullable=True)
    cancellation_type: Mapped[str | None] = mapped_column(String(64), nullable=True)
    cancellation_deadline: Mapped[datetime | None] = mapped_column(nullable=True)
    provider: Mapped[str | None] = mapped_column(String(32), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        nullable=False,
        default=utcnow,
        server_default=func.now()
    )

    booking: Mapped["Booking | None"] = relationship(
        "Booking",
        back_populates="hold",
        uselist=False
    )

    def __repr__(self) -> str:
        return f"<Hold(id={self.id}, hotel_id={self.hotel_id}, price={self.price}, provider={self.provider})>"


class Booking(Base):
    """
    Purchased reservation available for resale downstream.

    ``price`` is what was paid upstream and ``push_price`` is the resale
    price published to the channel. A booking without ``provider`` was
    entered manually and is cancelled locally.
    """

    __tablename__ = "bookings"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    hold_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("holds.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        index=True
    )
    opportunity_id: Mapped[UUID | None] = mapped_column(
        Uuid,
        ForeignKey("opportunities.id"),
        nullable=True,
        index=True
    )
    hotel_id: Mapped[UUID] = mapped_column(Uuid, ForeignKey("hotels.id"), nullable=False, index=True)
    category_id: Mapped[UUID | None] = mapped_column(Uuid, ForeignKey("room_categories.id"), nullable=True)
    board_id: Mapped[UUID | None] = mapped_column(Uuid, ForeignKey("boards.id"), nullable=True)

    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)

    confirmation_ref: Mapped[str | None] = mapped_column(String(128), nullable=True, index=True)
    supplier_reference: Mapped[str | None] = mapped_column(String(128), nullable=True)

    price: Mapped[float] = mapped_column(Numeric(12, 2, asdecimal=False), nullable=False)
    last_price: Mapped[float | None] = mapped_column(Numeric(12, 2, asdecimal=False), nullable=True)
    push_price: Mapped[float | None] = mapped_column(Numeric(12, 2, asdecimal=False), nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)
    is_sold: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)
    status: Mapped[BookingStatus] = mapped_column(
        String(20),
        nullable=False,
        default=BookingStatus.CONFIRMED.value,
        index=True
    )

    cancellation_type: Mapped[str | None] = mapped_column(String(64), nullable=True)
    cancellation_deadline: Mapped[datetime | None] = mapped_column(nullable=True, index=True)
    provider: Mapped[str | None] = mapped_column(String(32), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        nullable=False,
        default=utcnow,
        server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        nullable=False,
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow
    )

    hold: Mapped["Hold"] = relationship("Hold", back_populates="booking")
    hotel: Mapped["Hotel"] = relationship("Hotel")
    category: Mapped["RoomCategory | None"] = relationship("RoomCategory")
    board: Mapped["Board | None"] = relationship("Board")

    def __repr__(self) -> str:
        return (
            f"<Booking(id={self.id}, hold_id={self.hold_id}, price={self.price}, "
            f"push_price={self.push_price}, status={self.status})>"
        )
