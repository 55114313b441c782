"""Cancellation record model definition."""

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import ForeignKey, Numeric, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from ..core.clock import utcnow
from ..core.database import Base


class CancellationRecord(Base):
    """Append-only record of a completed booking cancellation."""

    __tablename__ = "cancellations"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    booking_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("bookings.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    hold_id: Mapped[UUID] = mapped_column(Uuid, ForeignKey("holds.id"), nullable=False)

    reason: Mapped[str] = mapped_column(Text, nullable=False)
    refund_amount: Mapped[float | None] = mapped_column(Numeric(12, 2, asdecimal=False), nullable=True)
    fee: Mapped[float | None] = mapped_column(Numeric(12, 2, asdecimal=False), nullable=True)
    supplier_cancellation_id: Mapped[str | None] = mapped_column(String(128), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        nullable=False,
        default=utcnow,
        server_default=func.now()
    )

    def __repr__(self) -> str:
        return f"<CancellationRecord(id={self.id}, booking_id={self.booking_id})>"
