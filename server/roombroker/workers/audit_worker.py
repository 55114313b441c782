"""Audit worker: detects drift between active bookings and what the channel was sent."""

import logging
from collections import Counter, defaultdict
from datetime import datetime
from decimal import ROUND_FLOOR, Decimal
from typing import Any, Optional, Sequence
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..clients import ota
from ..clients.notifications import Notifier
from ..core.clock import utcnow
from ..core.config import Settings
from ..core.observability import metrics_collector
from ..models.booking import Booking
from ..models.push_log import PushLogEntry, PushType
from ..schemas.audit import AuditProblem, AuditProblemType, AuditReport
from ..services.booking_service import BookingService
from ..services.push_log_service import PushLogService
from .base import BaseWorker

logger = logging.getLogger(__name__)

TOP_PROBLEMS_IN_SUMMARY = 5


def truncate_price(value: float) -> Decimal:
    """Truncate (not round) a price to one decimal place."""
    return Decimal(str(value)).quantize(Decimal("0.1"), rounding=ROUND_FLOOR)


def _problem(booking: Booking, problem_type: AuditProblemType, message: str, **fields: Any) -> AuditProblem:
    hotel = booking.hotel
    return AuditProblem(
        type=problem_type,
        booking_id=booking.id,
        hotel_id=booking.hotel_id,
        hotel_name=hotel.name if hotel else None,
        hotel_code=hotel.channel_hotel_code if hotel else None,
        room_code=booking.category.channel_room_code if booking.category else None,
        rate_plan_code=hotel.channel_rate_plan_code if hotel else None,
        start_date=booking.start_date,
        end_date=booking.end_date,
        message=message,
        **fields,
    )


def pushed_amount(entry: PushLogEntry) -> Optional[float]:
    """Amount a rate push carried, read from the request body for older entries."""
    if entry.pushed_price is not None:
        return entry.pushed_price
    return ota.extract_rate_amount(entry.request_body)


def check_booking(
    booking: Booking, latest: Optional[dict[PushType, PushLogEntry]]
) -> Optional[AuditProblem]:
    """
    Per-booking checks, first match wins: channel mapping, any successful
    push, then rate drift.

    Drift compares the booking's resale price (``push_price``) with the
    amount in its latest successful rate push, both truncated to one
    decimal. The purchase price plays no part.
    """
    hotel = booking.hotel
    if hotel is None or not hotel.channel_hotel_code:
        return _problem(
            booking,
            AuditProblemType.MISSING_CHANNEL_MAPPING,
            "Hotel has no channel code - cannot push to channel",
        )

    if not latest:
        return _problem(
            booking,
            AuditProblemType.MISSING_PUSH,
            "Active booking never successfully pushed to channel",
            expected=booking.push_price,
        )

    rate_entry = latest.get(PushType.RATE)
    if rate_entry is None or booking.push_price is None:
        return None

    pushed = pushed_amount(rate_entry)
    if pushed is None:
        return None

    expected = truncate_price(booking.push_price)
    actual = truncate_price(pushed)
    if expected != actual:
        return _problem(
            booking,
            AuditProblemType.PRICE_MISMATCH,
            f"Price mismatch: DB={expected}, Pushed={actual}",
            expected=float(expected),
            actual=float(actual),
        )
    return None


def find_overlaps(bookings: Sequence[Booking]) -> list[AuditProblem]:
    """Every pair of same hotel/category/board bookings whose stays overlap."""
    groups: dict[tuple[UUID, Optional[UUID], Optional[UUID]], list[Booking]] = defaultdict(list)
    for booking in bookings:
        groups[(booking.hotel_id, booking.category_id, booking.board_id)].append(booking)

    problems = []
    for group in groups.values():
        if len(group) < 2:
            continue
        ordered = sorted(group, key=lambda b: b.start_date)
        for i, current in enumerate(ordered):
            for other in ordered[i + 1:]:
                # sorted by start, so nothing later can overlap either
                if other.start_date >= current.end_date:
                    break
                problems.append(_problem(
                    current,
                    AuditProblemType.OVERLAPPING_BOOKINGS,
                    f"Overlapping dates: booking {current.id} ends {current.end_date}, "
                    f"booking {other.id} starts {other.start_date}",
                    other_booking_id=other.id,
                ))
    return problems


class AuditWorker(BaseWorker):
    """
    Compares active bookings with the push log.

    The problems of the latest completed run are kept in memory and served
    by :meth:`get_problems`; a failed run keeps the previous list.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        notifier: Optional[Notifier] = None,
        interval_seconds: float = 86400,
        enabled: bool = False,
        max_unhealthy_checks: int = 3,
    ):
        super().__init__(
            name="audit",
            interval_seconds=interval_seconds,
            enabled=enabled,
            max_unhealthy_checks=max_unhealthy_checks,
            notifier=notifier,
        )
        self.session_factory = session_factory
        self.total_audited = 0
        self._problems: list[AuditProblem] = []
        self._generated_at: Optional[datetime] = None

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        session_factory: async_sessionmaker[AsyncSession],
        notifier: Optional[Notifier] = None,
    ) -> "AuditWorker":
        return cls(
            session_factory,
            notifier,
            interval_seconds=settings.audit_worker_interval_seconds,
            enabled=settings.audit_worker_enabled,
            max_unhealthy_checks=settings.audit_worker_max_unhealthy_checks,
        )

    def get_problems(self) -> list[AuditProblem]:
        return list(self._problems)

    def get_report(self) -> AuditReport:
        counts = Counter(p.type.value for p in self._problems)
        return AuditReport(
            generated_at=self._generated_at,
            total=len(self._problems),
            by_type=dict(counts),
            problems=self.get_problems(),
        )

    def details(self) -> dict[str, Any]:
        return {
            "total_audited": self.total_audited,
            "problem_count": len(self._problems),
            "last_report_at": self._generated_at.isoformat() if self._generated_at else None,
        }

    async def audit(self) -> list[AuditProblem]:
        """Run all checks once and return the problems found."""
        async with self.session_factory() as session:
            bookings = await BookingService(session).list_active_with_details()
            latest = await PushLogService(session).latest_successful(b.id for b in bookings)

        problems: list[AuditProblem] = []
        for booking in bookings:
            problem = check_booking(booking, latest.get(booking.id))
            if problem is not None:
                problems.append(problem)
        problems.extend(find_overlaps(bookings))

        self.total_audited += len(bookings)
        return problems

    async def process(self) -> None:
        problems = await self.audit()

        self._problems = problems
        self._generated_at = utcnow()

        counts = Counter(p.type.value for p in problems)
        metrics_collector.set_audit_problems(dict(counts))

        if not problems:
            logger.info("Audit complete - no problems found", extra={"worker": self.name})
            return

        logger.warning(
            "Audit problems found",
            extra={"total": len(problems), "by_type": dict(counts)}
        )

        type_lines = "\n".join(f"  - {t}: {n}" for t, n in counts.items())
        top = "\n".join(
            f"  - {p.hotel_name or 'Unknown'}: {p.message}" for p in problems[:TOP_PROBLEMS_IN_SUMMARY]
        )
        await self._notify(
            f"*Audit Report*\nProblems Found: {len(problems)}\n\n"
            f"*By Type:*\n{type_lines}\n\n*Top Issues:*\n{top}"
        )
