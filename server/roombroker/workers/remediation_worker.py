"""Remediation worker: applies safe automatic fixes to audit problems."""

import logging
from typing import Any, Optional, Protocol

from ..clients.channel import ChannelPushClient
from ..clients.notifications import Notifier
from ..core.config import Settings
from ..core.exceptions import ChannelPushError
from ..schemas.audit import AuditProblem, AuditProblemType, FixOutcome, FixResult
from ..schemas.channel import AvailabilityUpdate
from .base import BaseWorker

logger = logging.getLogger(__name__)


class ProblemSource(Protocol):
    def get_problems(self) -> list[AuditProblem]:
        ...


class RemediationWorker(BaseWorker):
    """
    Works through the latest audit problems.

    Only bookings that were never pushed are fixed automatically, by
    closing the room downstream. Everything else needs a person and is
    skipped with a reason. A fix that raises is recorded as failed.
    """

    def __init__(
        self,
        problem_source: ProblemSource,
        channel: ChannelPushClient,
        notifier: Optional[Notifier] = None,
        interval_seconds: float = 21600,
        enabled: bool = False,
        max_unhealthy_checks: int = 3,
    ):
        super().__init__(
            name="remediation",
            interval_seconds=interval_seconds,
            enabled=enabled,
            max_unhealthy_checks=max_unhealthy_checks,
            notifier=notifier,
        )
        self.problem_source = problem_source
        self.channel = channel
        self.counters = {"fixed": 0, "skipped": 0, "failed": 0}
        self.last_fix_log: list[FixResult] = []

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        problem_source: ProblemSource,
        channel: ChannelPushClient,
        notifier: Optional[Notifier] = None,
    ) -> "RemediationWorker":
        return cls(
            problem_source,
            channel,
            notifier,
            interval_seconds=settings.remediation_worker_interval_seconds,
            enabled=settings.remediation_worker_enabled,
            max_unhealthy_checks=settings.remediation_worker_max_unhealthy_checks,
        )

    def details(self) -> dict[str, Any]:
        return {
            **self.counters,
            "last_fix_log": [r.model_dump(mode="json") for r in self.last_fix_log],
        }

    async def process(self) -> None:
        problems = self.problem_source.get_problems()
        if not problems:
            logger.info("No audit problems to fix", extra={"worker": self.name})
            return

        logger.info(f"Processing {len(problems)} audit problems", extra={"worker": self.name})

        fix_log = []
        for problem in problems:
            try:
                result = await self.fix(problem)
            except Exception as e:
                logger.error(
                    f"Fix attempt failed: {e}",
                    exc_info=not isinstance(e, ChannelPushError),
                    extra={"problem_type": problem.type.value, "booking_id": str(problem.booking_id)}
                )
                result = FixResult(problem=problem, outcome=FixOutcome.FAILED, error=str(e))

            self.counters[result.outcome.value] += 1
            fix_log.append(result)

        self.last_fix_log = fix_log
        await self._send_summary(fix_log)

    async def fix(self, problem: AuditProblem) -> FixResult:
        """
        Apply the fix for one problem.

        Raises:
            ChannelPushError: If closing the room downstream did not succeed
        """
        if problem.type == AuditProblemType.MISSING_PUSH:
            return await self._close_unpushed(problem)

        if problem.type == AuditProblemType.PRICE_MISMATCH:
            detail = (
                f"Price mismatch on booking {problem.booking_id} ({problem.hotel_name}) requires "
                f"manual review. DB={problem.expected}, Pushed={problem.actual}"
            )
        elif problem.type == AuditProblemType.MISSING_CHANNEL_MAPPING:
            detail = f"Hotel {problem.hotel_name} ({problem.hotel_id}) has no channel code - needs manual mapping"
        elif problem.type == AuditProblemType.OVERLAPPING_BOOKINGS:
            detail = (
                f"Overlapping bookings {problem.booking_id}, {problem.other_booking_id} at "
                f"{problem.hotel_name} - needs manual resolution"
            )
        else:
            detail = f"Unknown problem type: {problem.type}"

        return FixResult(problem=problem, outcome=FixOutcome.SKIPPED, detail=detail)

    async def _close_unpushed(self, problem: AuditProblem) -> FixResult:
        if not problem.hotel_code or not problem.room_code:
            return FixResult(
                problem=problem,
                outcome=FixOutcome.SKIPPED,
                detail=f"Booking {problem.booking_id} ({problem.hotel_name}) missing channel codes - cannot push",
            )

        result = await self.channel.push_availability(AvailabilityUpdate(
            hotel_code=problem.hotel_code,
            room_code=problem.room_code,
            rate_plan_code=problem.rate_plan_code or "STD",
            start_date=problem.start_date,
            end_date=problem.end_date,
            booking_id=problem.booking_id,
            available=0,
        ))
        if not result.success:
            raise ChannelPushError(f"Zero-availability push failed: {result.error}")

        logger.info(
            "Closed room for unpushed booking",
            extra={"booking_id": str(problem.booking_id), "hotel_code": problem.hotel_code}
        )
        return FixResult(
            problem=problem,
            outcome=FixOutcome.FIXED,
            detail=f"Pushed zero availability for booking {problem.booking_id} ({problem.hotel_name})",
        )

    async def _send_summary(self, fix_log: list[FixResult]) -> None:
        fixed = [r for r in fix_log if r.outcome == FixOutcome.FIXED]
        skipped = [r for r in fix_log if r.outcome == FixOutcome.SKIPPED]
        failed = [r for r in fix_log if r.outcome == FixOutcome.FAILED]

        if not fixed and not failed:
            return

        text = f"*Auto-Fix Report*\nFixed: {len(fixed)}\nSkipped: {len(skipped)}\nFailed: {len(failed)}\n"
        if fixed:
            text += "\n*Fixed:*\n" + "\n".join(f"  - {r.detail}" for r in fixed[:5])
        if failed:
            text += "\n*Failed:*\n" + "\n".join(
                f"  - {r.problem.hotel_name or 'Unknown'} ({r.problem.booking_id}): {r.error}" for r in failed[:3]
            )
        await self._notify(text)
