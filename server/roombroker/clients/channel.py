"""Downstream distribution channel push client."""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional, Sequence

import httpx
from opentelemetry import trace
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.config import Settings
from ..core.observability import metrics_collector
from ..core.retry import BackoffPolicy
from ..models.push_log import PushLogEntry, PushType
from ..schemas.channel import (
    AvailabilityUpdate,
    BatchItemResult,
    BatchPushResult,
    BookingPush,
    BookingPushResult,
    InventoryScope,
    PushResult,
    RateUpdate,
)
from ..services.push_log_service import PushLogService
from . import ota

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

Sleep = Callable[[float], Awaitable[None]]


class ChannelPushClient:
    """
    Publishes availability and rates to the channel over OTA SOAP.

    Every attempt, retries included, is written to the push log. A failure
    to write the log is logged and otherwise ignored so it can never change
    the push outcome.
    """

    def __init__(
        self,
        service_url: str,
        requestor_id: str,
        agent_name: str,
        agent_password: str,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        currency: str = "EUR",
        backoff: Optional[BackoffPolicy] = None,
        batch_size: int = 50,
        batch_item_delay: float = 0.1,
        batch_chunk_delay: float = 1.0,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.service_url = service_url
        self.requestor_id = requestor_id
        self.agent_name = agent_name
        self.agent_password = agent_password
        self.session_factory = session_factory
        self.currency = currency
        self.backoff = backoff or BackoffPolicy()
        self.batch_size = batch_size
        self.batch_item_delay = batch_item_delay
        self.batch_chunk_delay = batch_chunk_delay
        self.timeout = timeout
        self._client = client
        self._sleep = sleep

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        client: Optional[httpx.AsyncClient] = None,
        sleep: Sleep = asyncio.sleep,
    ) -> "ChannelPushClient":
        return cls(
            service_url=settings.channel_service_url,
            requestor_id=settings.channel_requestor_id,
            agent_name=settings.channel_agent_name,
            agent_password=settings.channel_agent_password,
            session_factory=session_factory,
            currency=settings.channel_currency,
            backoff=BackoffPolicy(
                base_delay=settings.channel_backoff_base_seconds,
                max_delay=settings.channel_backoff_max_seconds,
                max_retries=settings.channel_max_retries,
            ),
            batch_size=settings.channel_batch_size,
            batch_item_delay=settings.channel_batch_item_delay_seconds,
            batch_chunk_delay=settings.channel_batch_chunk_delay_seconds,
            client=client,
            sleep=sleep,
        )

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "text/xml; charset=utf-8",
            "SOAPAction": ota.SOAP_ACTION,
        }

    async def _log_attempt(self, entry: PushLogEntry) -> None:
        if self.session_factory is None:
            return
        try:
            async with self.session_factory() as session:
                await PushLogService(session).record(entry)
        except Exception as e:
            logger.error(
                f"Failed to write push log entry: {e}",
                exc_info=True,
                extra={"booking_id": str(entry.booking_id) if entry.booking_id else None}
            )

    async def _attempt(self, message: str) -> tuple[bool, Optional[str], Optional[str]]:
        """One POST. Returns (success, error, response body)."""
        try:
            client = await self._get_client()
            response = await client.post(
                self.service_url,
                content=message.encode("utf-8"),
                headers=self._headers(),
                auth=(self.agent_name, self.agent_password),
            )
        except httpx.HTTPError as e:
            return False, str(e) or e.__class__.__name__, None

        body = response.text
        if response.status_code >= 400:
            return False, f"HTTP {response.status_code}", body

        parsed = ota.parse_response(body)
        return parsed.success, parsed.error, body

    async def _deliver(
        self,
        push_type: PushType,
        message: str,
        scope: InventoryScope,
        pushed_price: Optional[float] = None,
    ) -> PushResult:
        """Send ``message`` with retry and backoff, logging every attempt."""
        error: Optional[str] = None
        body: Optional[str] = None

        with tracer.start_as_current_span(f"channel.push_{push_type.value}") as span:
            span.set_attribute("roombroker.hotel_code", scope.hotel_code)
            span.set_attribute("roombroker.room_code", scope.room_code)

            for attempt in range(self.backoff.max_attempts):
                started = time.monotonic()
                success, error, body = await self._attempt(message)
                processing_ms = int((time.monotonic() - started) * 1000)

                metrics_collector.record_push_attempt(push_type.value, success)
                await self._log_attempt(PushLogEntry(
                    booking_id=scope.booking_id,
                    opportunity_id=scope.opportunity_id,
                    push_type=push_type.value,
                    request_body=message,
                    response_body=body,
                    success=success,
                    error=error,
                    retry_count=attempt,
                    processing_ms=processing_ms,
                    pushed_price=pushed_price,
                ))

                if success:
                    span.set_attribute("roombroker.attempts", attempt + 1)
                    logger.info(
                        f"Pushed {push_type.value} for hotel {scope.hotel_code}",
                        extra={
                            "hotel_code": scope.hotel_code,
                            "room_code": scope.room_code,
                            "attempt": attempt + 1,
                            "processing_ms": processing_ms,
                        }
                    )
                    return PushResult(
                        success=True,
                        push_type=push_type,
                        attempts=attempt + 1,
                        response=body,
                        pushed_price=pushed_price,
                    )

                if self.backoff.should_retry(attempt + 1):
                    delay = self.backoff.delay(attempt + 1)
                    logger.warning(
                        f"{push_type.value} push failed, retrying in {delay}s: {error}",
                        extra={"hotel_code": scope.hotel_code, "attempt": attempt + 1, "error": error}
                    )
                    await self._sleep(delay)

            span.set_attribute("roombroker.attempts", self.backoff.max_attempts)

        logger.error(
            f"{push_type.value} push failed after {self.backoff.max_attempts} attempts: {error}",
            extra={
                "hotel_code": scope.hotel_code,
                "room_code": scope.room_code,
                "booking_id": str(scope.booking_id) if scope.booking_id else None,
                "error": error,
            }
        )
        return PushResult(
            success=False,
            push_type=push_type,
            attempts=self.backoff.max_attempts,
            error=error,
            response=body,
            pushed_price=pushed_price,
        )

    async def push_availability(self, update: AvailabilityUpdate) -> PushResult:
        message = ota.build_availability_message(update, self.requestor_id, self.agent_name)
        return await self._deliver(PushType.AVAILABILITY, message, update)

    async def push_rate(self, update: RateUpdate) -> PushResult:
        message = ota.build_rate_message(update, self.requestor_id, self.agent_name, self.currency)
        return await self._deliver(PushType.RATE, message, update, ota.extract_rate_amount(message))

    async def push_booking(self, push: BookingPush) -> BookingPushResult:
        """
        Publish availability, then rate.

        The rate is not sent when the availability push fails.
        """
        scope = push.model_dump(include=set(InventoryScope.model_fields))

        availability = await self.push_availability(AvailabilityUpdate(**scope, available=push.available))
        if not availability.success:
            return BookingPushResult(
                success=False,
                availability=availability,
                error=f"Failed to push availability: {availability.error}",
            )

        rate = await self.push_rate(RateUpdate(**scope, price=push.price))
        return BookingPushResult(
            success=rate.success,
            availability=availability,
            rate=rate,
            error=None if rate.success else f"Failed to push rate: {rate.error}",
        )

    async def close_booking(self, push: BookingPush) -> BookingPushResult:
        """Same as :meth:`push_booking` with availability forced to zero."""
        return await self.push_booking(push.model_copy(update={"available": 0}))

    async def push_batch(self, items: Sequence[BookingPush]) -> BatchPushResult:
        """
        Push many bookings in chunks, pacing requests for the channel.

        Waits ``batch_item_delay`` between items of a chunk and
        ``batch_chunk_delay`` between chunks.
        """
        result = BatchPushResult(total=len(items))

        for chunk_start in range(0, len(items), self.batch_size):
            if chunk_start > 0:
                await self._sleep(self.batch_chunk_delay)

            chunk = items[chunk_start:chunk_start + self.batch_size]
            for index, item in enumerate(chunk):
                if index > 0:
                    await self._sleep(self.batch_item_delay)

                try:
                    pushed = await self.push_booking(item)
                    outcome = BatchItemResult(booking_id=item.booking_id, success=pushed.success, error=pushed.error)
                except Exception as e:
                    logger.error(
                        f"Batch push item failed: {e}",
                        exc_info=True,
                        extra={"booking_id": str(item.booking_id) if item.booking_id else None}
                    )
                    outcome = BatchItemResult(booking_id=item.booking_id, success=False, error=str(e))

                result.items.append(outcome)
                if outcome.success:
                    result.succeeded += 1
                else:
                    result.failed += 1

        logger.info(
            "Batch push complete",
            extra={"total": result.total, "succeeded": result.succeeded, "failed": result.failed}
        )
        return result
