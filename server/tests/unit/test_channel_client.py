"""Unit tests for the channel push client."""

import base64
from datetime import date
from uuid import uuid4

import httpx
import pytest
from sqlalchemy import select

from roombroker.clients.channel import ChannelPushClient
from roombroker.core.retry import BackoffPolicy
from roombroker.models.push_log import PushLogEntry, PushType
from roombroker.schemas.channel import AvailabilityUpdate, BookingPush, RateUpdate

from conftest import CHANNEL_URL, ERROR_XML, SUCCESS_XML, ChannelStub


def _scope(**overrides):
    values = dict(
        hotel_code="SEAVIEW",
        room_code="DLX",
        start_date=date(2026, 11, 1),
        end_date=date(2026, 11, 3),
        booking_id=uuid4(),
    )
    values.update(overrides)
    return values


async def _log_entries(session_factory) -> list[PushLogEntry]:
    async with session_factory() as session:
        result = await session.execute(select(PushLogEntry).order_by(PushLogEntry.retry_count))
        return list(result.scalars().all())


@pytest.mark.asyncio
async def test_push_availability_success(channel, channel_stub, session_factory):
    """A successful push sends one authenticated SOAP request and logs it."""
    result = await channel.push_availability(AvailabilityUpdate(**_scope()))

    assert result.success
    assert result.attempts == 1
    assert len(channel_stub.requests) == 1

    request = channel_stub.requests[0]
    assert str(request.url) == CHANNEL_URL
    assert request.headers["Content-Type"].startswith("text/xml")
    assert request.headers["Authorization"] == "Basic " + base64.b64encode(b"roombroker:secret").decode()
    assert "OTA_HotelAvailNotifRQ" in channel_stub.bodies[0]

    entries = await _log_entries(session_factory)
    assert len(entries) == 1
    assert entries[0].success
    assert entries[0].push_type == PushType.AVAILABILITY.value
    assert entries[0].retry_count == 0
    assert channel_stub.sleeps == []


@pytest.mark.asyncio
async def test_push_retries_then_gives_up(channel, channel_stub, session_factory):
    """Every attempt is logged; waits double between attempts."""
    channel_stub.queue(*(httpx.Response(200, text=ERROR_XML) for _ in range(3)))

    result = await channel.push_availability(AvailabilityUpdate(**_scope()))

    assert not result.success
    assert result.attempts == 3
    assert result.error == "Invalid hotel code"
    assert channel_stub.sleeps == [1.0, 2.0]

    entries = await _log_entries(session_factory)
    assert [e.retry_count for e in entries] == [0, 1, 2]
    assert not any(e.success for e in entries)
    assert all(e.error == "Invalid hotel code" for e in entries)


@pytest.mark.asyncio
async def test_push_recovers_after_http_error(channel, channel_stub, session_factory):
    channel_stub.queue(httpx.Response(503, text="unavailable"))

    result = await channel.push_availability(AvailabilityUpdate(**_scope()))

    assert result.success
    assert result.attempts == 2

    entries = await _log_entries(session_factory)
    assert [(e.success, e.error) for e in entries] == [(False, "HTTP 503"), (True, None)]


@pytest.mark.asyncio
async def test_push_transport_error_is_reported(channel, channel_stub):
    channel_stub.queue(*(httpx.ConnectError("connection refused") for _ in range(3)))

    result = await channel.push_availability(AvailabilityUpdate(**_scope()))

    assert not result.success
    assert "connection refused" in result.error


@pytest.mark.asyncio
async def test_push_rate_records_pushed_price(channel, session_factory):
    result = await channel.push_rate(RateUpdate(**_scope(), price=149.99))

    assert result.success
    assert result.pushed_price == 149.99

    entries = await _log_entries(session_factory)
    assert entries[0].push_type == PushType.RATE.value
    assert entries[0].pushed_price == 149.99


@pytest.mark.asyncio
async def test_push_booking_sends_availability_then_rate(channel, channel_stub):
    result = await channel.push_booking(BookingPush(**_scope(), price=150.0))

    assert result.success
    assert result.rate is not None and result.rate.success
    assert "OTA_HotelAvailNotifRQ" in channel_stub.bodies[0]
    assert "OTA_HotelRatePlanNotifRQ" in channel_stub.bodies[1]
    assert 'AmountAfterTax="150.00"' in channel_stub.bodies[1]


@pytest.mark.asyncio
async def test_push_booking_skips_rate_when_availability_fails(channel, channel_stub):
    """The rate is never sent for a room whose availability push failed."""
    channel_stub.queue(*(httpx.Response(200, text=ERROR_XML) for _ in range(3)))

    result = await channel.push_booking(BookingPush(**_scope(), price=150.0))

    assert not result.success
    assert result.rate is None
    assert result.error.startswith("Failed to push availability")
    assert len(channel_stub.requests) == 3
    assert all("OTA_HotelRatePlanNotifRQ" not in body for body in channel_stub.bodies)


@pytest.mark.asyncio
async def test_close_booking_pushes_zero_availability(channel, channel_stub):
    result = await channel.close_booking(BookingPush(**_scope(), price=150.0))

    assert result.success
    assert 'Status="Close"' in channel_stub.bodies[0]


@pytest.mark.asyncio
async def test_push_log_failure_does_not_change_outcome(channel_stub):
    """A broken log sink is logged and ignored."""

    def broken_factory():
        raise RuntimeError("database down")

    client = ChannelPushClient(
        service_url=CHANNEL_URL,
        requestor_id="R",
        agent_name="a",
        agent_password="p",
        session_factory=broken_factory,
        client=httpx.AsyncClient(transport=httpx.MockTransport(channel_stub.handler)),
        sleep=channel_stub.sleep,
    )

    result = await client.push_availability(AvailabilityUpdate(**_scope()))
    await client.close()

    assert result.success


@pytest.mark.asyncio
async def test_push_batch_paces_chunks():
    stub = ChannelStub()
    client = ChannelPushClient(
        service_url=CHANNEL_URL,
        requestor_id="R",
        agent_name="a",
        agent_password="p",
        backoff=BackoffPolicy(max_retries=0),
        batch_size=2,
        batch_item_delay=0.1,
        batch_chunk_delay=1.0,
        client=httpx.AsyncClient(transport=httpx.MockTransport(stub.handler)),
        sleep=stub.sleep,
    )
    # Third booking's availability fails
    stub.queue(
        httpx.Response(200, text=SUCCESS_XML),
        httpx.Response(200, text=SUCCESS_XML),
        httpx.Response(200, text=SUCCESS_XML),
        httpx.Response(200, text=SUCCESS_XML),
        httpx.Response(200, text=ERROR_XML),
    )

    items = [BookingPush(**_scope(), price=100.0 + i) for i in range(3)]
    result = await client.push_batch(items)
    await client.close()

    assert (result.total, result.succeeded, result.failed) == (3, 2, 1)
    assert [item.booking_id for item in result.items] == [item.booking_id for item in items]
    assert not result.items[2].success
    # item delay inside the first chunk, then one chunk delay
    assert stub.sleeps == [0.1, 1.0]
