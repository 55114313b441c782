"""Push log and push queue model definitions."""

from datetime import datetime
from enum import Enum
from uuid import UUID, uuid4

from sqlalchemy import Boolean, Integer, Numeric, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from ..core.clock import utcnow
from ..core.database import Base


class PushType(str, Enum):
    """Kind of downstream push."""
    AVAILABILITY = "availability"
    RATE = "rate"


class PushLogEntry(Base):
    """
    One attempt to publish availability or rate downstream.

    Written for every attempt including retries, so a push that fails all
    attempts leaves one failed entry per attempt. Append-only.
    """

    __tablename__ = "push_log"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    booking_id: Mapped[UUID | None] = mapped_column(Uuid, nullable=True, index=True)
    opportunity_id: Mapped[UUID | None] = mapped_column(Uuid, nullable=True, index=True)

    push_type: Mapped[PushType] = mapped_column(String(20), nullable=False, index=True)
    request_body: Mapped[str] = mapped_column(Text, nullable=False)
    response_body: Mapped[str | None] = mapped_column(Text, nullable=True)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False, index=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    retry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    processing_ms: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    pushed_price: Mapped[float | None] = mapped_column(Numeric(12, 2, asdecimal=False), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        nullable=False,
        default=utcnow,
        server_default=func.now(),
        index=True
    )

    def __repr__(self) -> str:
        return (
            f"<PushLogEntry(id={self.id}, booking_id={self.booking_id}, type={self.push_type}, "
            f"success={self.success}, retry={self.retry_count})>"
        )


class QueueStatus(str, Enum):
    """Verification state of a push queue item."""
    QUEUED = "queued"
    VERIFIED = "verified"
    ERROR = "error"


class PushQueueItem(Base):
    """
    A booking waiting for downstream publication and verification.

    ``is_pushed`` is set once the booking reaches the channel manager.
    ``status`` moves from queued to verified or error when the push
    verification worker compares the published rate with the booking.
    """

    __tablename__ = "push_queue"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    booking_id: Mapped[UUID | None] = mapped_column(Uuid, nullable=True, index=True)
    opportunity_id: Mapped[UUID | None] = mapped_column(Uuid, nullable=True)

    is_pushed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)
    pushed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    status: Mapped[QueueStatus] = mapped_column(
        String(20),
        nullable=False,
        default=QueueStatus.QUEUED.value,
        index=True
    )
    message: Mapped[str | None] = mapped_column(Text, nullable=True)
    verified_at: Mapped[datetime | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        nullable=False,
        default=utcnow,
        server_default=func.now()
    )

    def __repr__(self) -> str:
        return (
            f"<PushQueueItem(id={self.id}, booking_id={self.booking_id}, "
            f"pushed={self.is_pushed}, status={self.status})>"
        )
