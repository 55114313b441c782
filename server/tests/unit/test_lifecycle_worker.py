"""Unit tests for the lifecycle (auto-cancellation) worker."""

from datetime import timedelta

import pytest
from sqlalchemy import select

from roombroker.core.clock import utcnow
from roombroker.core.rate_limit import SlidingWindowRateLimiter
from roombroker.models import Booking, CancellationRecord
from roombroker.schemas.supplier import CancelResult
from roombroker.services.booking_service import BookingService
from roombroker.workers.lifecycle_worker import (
    CANCELLATION_REASON,
    CAP_WINDOW_SECONDS,
    LOCAL_CANCELLATION_ID,
    LifecycleWorker,
)

from conftest import FakeClock


def make_worker(session_factory, aggregator, channel, notifier, **overrides) -> LifecycleWorker:
    return LifecycleWorker(session_factory, aggregator, channel, notifier, **overrides)


async def _bookings(session_factory) -> dict:
    async with session_factory() as session:
        return {b.id: b for b in (await session.execute(select(Booking))).scalars().all()}


async def _cancellations(session_factory) -> list[CancellationRecord]:
    async with session_factory() as session:
        return list((await session.execute(select(CancellationRecord))).scalars().all())


@pytest.mark.asyncio
async def test_cancels_nearest_deadline_first_up_to_hourly_cap(
    session_factory, aggregator, innstant, channel, notifier, make_hotel, make_booking
):
    """With a cap of two, the third candidate waits until the hour has passed."""
    setup = await make_hotel()
    now = utcnow()
    last = await make_booking(setup, confirmation_ref="BK-3", cancellation_deadline=now + timedelta(hours=9))
    first = await make_booking(setup, confirmation_ref="BK-1", cancellation_deadline=now + timedelta(hours=1))
    second = await make_booking(setup, confirmation_ref="BK-2", cancellation_deadline=now + timedelta(hours=5))
    clock = FakeClock()
    limiter = SlidingWindowRateLimiter(2, CAP_WINDOW_SECONDS, clock=clock)
    worker = make_worker(session_factory, aggregator, channel, notifier, rate_limiter=limiter)

    await worker.process()

    assert innstant.calls == [("cancel", "BK-1"), ("cancel", "BK-2")]
    assert worker.counters == {"cancelled": 2, "escalated": 0, "deferred": 1, "unrecorded": 0}

    stored = await _bookings(session_factory)
    assert not stored[first.id].is_active and stored[first.id].status == "cancelled"
    assert not stored[second.id].is_active
    assert stored[last.id].is_active

    records = await _cancellations(session_factory)
    assert {r.booking_id for r in records} == {first.id, second.id}
    assert all(r.reason == CANCELLATION_REASON for r in records)
    assert {r.supplier_cancellation_id for r in records} == {"CX-BK-1", "CX-BK-2"}
    assert len(notifier.matching("*Auto-Cancellation Success*")) == 2

    # the cap still holds on the next run
    clock.now += 60
    await worker.process()
    assert len(innstant.calls) == 2

    # and frees up once the first cancellation leaves the window
    clock.now += CAP_WINDOW_SECONDS
    await worker.process()
    assert innstant.calls[-1] == ("cancel", "BK-3")
    assert not (await _bookings(session_factory))[last.id].is_active
    assert worker.counters["cancelled"] == 3


@pytest.mark.asyncio
async def test_supplier_failure_escalates_once_and_leaves_booking(
    session_factory, aggregator, innstant, channel, channel_stub, notifier, make_hotel, make_booking
):
    setup = await make_hotel()
    booking = await make_booking(setup)
    innstant.cancel_result = CancelResult(success=False, supplier="innstant", error="Booking already checked in")
    worker = make_worker(session_factory, aggregator, channel, notifier)

    await worker.process()

    assert worker.counters["escalated"] == 1
    assert len(notifier.messages) == 1
    assert "*MANUAL CANCELLATION REQUIRED*" in notifier.messages[0]
    assert "Booking already checked in" in notifier.messages[0]

    stored = await _bookings(session_factory)
    assert stored[booking.id].is_active
    assert stored[booking.id].status == "confirmed"
    assert await _cancellations(session_factory) == []
    assert channel_stub.requests == []
    assert worker.rate_limiter.remaining() == worker.rate_limiter.max_events


@pytest.mark.asyncio
@pytest.mark.parametrize("overrides", [
    {"provider": "hotelbeds"},
    {"confirmation_ref": None},
])
async def test_uncancellable_bookings_are_escalated(
    session_factory, aggregator, innstant, channel, notifier, make_hotel, make_booking, overrides
):
    setup = await make_hotel()
    booking = await make_booking(setup, **overrides)
    worker = make_worker(session_factory, aggregator, channel, notifier)

    await worker.process()

    assert innstant.operations == []
    assert len(notifier.matching("*MANUAL CANCELLATION REQUIRED*")) == 1
    assert (await _bookings(session_factory))[booking.id].is_active


@pytest.mark.asyncio
async def test_unconfigured_provider_is_escalated(
    session_factory, aggregator, innstant, channel, notifier, make_hotel, make_booking
):
    setup = await make_hotel()
    await make_booking(setup)
    innstant.configured = False
    worker = make_worker(session_factory, aggregator, channel, notifier)

    await worker.process()

    assert innstant.operations == []
    assert worker.counters["escalated"] == 1


@pytest.mark.asyncio
async def test_manual_booking_is_cancelled_locally(
    session_factory, aggregator, innstant, goglobal, channel, notifier, make_hotel, make_booking
):
    setup = await make_hotel()
    booking = await make_booking(setup, provider=None)
    worker = make_worker(session_factory, aggregator, channel, notifier)

    await worker.process()

    assert innstant.operations == [] and goglobal.operations == []
    records = await _cancellations(session_factory)
    assert [(r.booking_id, r.supplier_cancellation_id) for r in records] == [(booking.id, LOCAL_CANCELLATION_ID)]


@pytest.mark.asyncio
async def test_only_active_unsold_bookings_inside_horizon(
    session_factory, aggregator, innstant, channel, notifier, make_hotel, make_booking
):
    setup = await make_hotel()
    now = utcnow()
    await make_booking(setup, confirmation_ref="FAR", cancellation_deadline=now + timedelta(days=3))
    await make_booking(setup, confirmation_ref="SOLD", is_sold=True)
    await make_booking(setup, confirmation_ref="GONE", is_active=False)
    await make_booking(setup, confirmation_ref="NODEADLINE", cancellation_deadline=None)
    await make_booking(setup, confirmation_ref="DUE")
    worker = make_worker(session_factory, aggregator, channel, notifier, horizon_hours=24)

    await worker.process()

    assert innstant.calls == [("cancel", "DUE")]


@pytest.mark.asyncio
async def test_cancellation_closes_room_downstream(
    session_factory, aggregator, channel, channel_stub, notifier, make_hotel, make_booking
):
    setup = await make_hotel()
    await make_booking(setup)
    worker = make_worker(session_factory, aggregator, channel, notifier)

    await worker.process()

    assert len(channel_stub.requests) == 1
    assert 'Status="Close"' in channel_stub.bodies[0]
    assert 'HotelCode="SEAVIEW"' in channel_stub.bodies[0]


@pytest.mark.asyncio
async def test_downstream_failure_does_not_undo_cancellation(
    session_factory, aggregator, channel, channel_stub, notifier, make_hotel, make_booking
):
    import httpx

    setup = await make_hotel()
    booking = await make_booking(setup)
    channel_stub.queue(*(httpx.Response(500) for _ in range(3)))
    worker = make_worker(session_factory, aggregator, channel, notifier)

    await worker.process()

    assert worker.counters["cancelled"] == 1
    assert not (await _bookings(session_factory))[booking.id].is_active


@pytest.mark.asyncio
async def test_local_write_failure_after_supplier_cancel_is_reported_apart(
    session_factory, aggregator, innstant, channel, channel_stub, notifier, make_hotel, make_booking, monkeypatch
):
    """The supplier cancelled but the local update failed: no manual-cancellation alert, no second cancel."""
    setup = await make_hotel()
    booking = await make_booking(setup)

    async def broken(self, *args, **kwargs):
        raise RuntimeError("database is locked")

    monkeypatch.setattr(BookingService, "record_cancellation", broken)
    worker = make_worker(session_factory, aggregator, channel, notifier)

    await worker.process()

    assert innstant.calls == [("cancel", "BK-100")]
    assert notifier.matching("*MANUAL CANCELLATION REQUIRED*") == []
    alerts = notifier.matching("*Cancellation Not Recorded*")
    assert len(alerts) == 1
    assert "cancelled with the supplier but local records are out of sync" in alerts[0]
    assert "database is locked" in alerts[0]

    assert worker.counters["unrecorded"] == 1
    assert worker.counters["escalated"] == 0
    assert worker.counters["cancelled"] == 0
    assert worker.details()["unrecorded_cancellations"] == {str(booking.id): "CX-BK-100"}
    assert worker.rate_limiter.remaining() == worker.rate_limiter.max_events - 1

    # the room is gone upstream so it is still closed downstream
    assert len(channel_stub.requests) == 1
    assert 'Status="Close"' in channel_stub.bodies[0]

    await worker.process()
    assert len(innstant.calls) == 1
