"""Hotel, room category and board reference models."""

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from ..core.clock import utcnow
from ..core.database import Base


class Hotel(Base):
    """
    Hotel with its upstream and downstream identifiers.

    ``supplier_hotel_id`` is the id used to search suppliers; a hotel without
    one cannot be acquired. ``channel_hotel_code`` is the code the downstream
    channel knows the hotel by.
    """

    __tablename__ = "hotels"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    supplier_hotel_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    channel_hotel_code: Mapped[str | None] = mapped_column(String(64), nullable=True)
    channel_rate_plan_code: Mapped[str] = mapped_column(String(32), nullable=False, default="STD")

    created_at: Mapped[datetime] = mapped_column(
        nullable=False,
        default=utcnow,
        server_default=func.now()
    )

    def __repr__(self) -> str:
        return f"<Hotel(id={self.id}, name='{self.name}', channel_hotel_code={self.channel_hotel_code})>"


class RoomCategory(Base):
    """Room category; ``channel_room_code`` is the downstream inventory type code."""

    __tablename__ = "room_categories"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    channel_room_code: Mapped[str | None] = mapped_column(String(64), nullable=True)

    def __repr__(self) -> str:
        return f"<RoomCategory(id={self.id}, name='{self.name}')>"


class Board(Base):
    """Meal plan."""

    __tablename__ = "boards"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    code: Mapped[str] = mapped_column(String(16), nullable=False)

    def __repr__(self) -> str:
        return f"<Board(id={self.id}, code='{self.code}')>"
