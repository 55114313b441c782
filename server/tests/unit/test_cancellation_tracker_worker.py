"""Unit tests for the cancellation tracker worker."""

from datetime import date, timedelta

import pytest

from roombroker.core.clock import utcnow
from roombroker.models import CancellationRecord
from roombroker.schemas.supplier import StatusResult
from roombroker.workers.cancellation_tracker_worker import CancellationTrackerWorker, is_cancelled_status


def make_worker(session_factory, aggregator, notifier, **overrides) -> CancellationTrackerWorker:
    return CancellationTrackerWorker(session_factory, aggregator, notifier, **overrides)


def status(value, supplier="innstant") -> StatusResult:
    return StatusResult(success=True, supplier=supplier, status=value)


@pytest.fixture
def make_cancelled(session_factory, make_booking):
    """A locally cancelled booking with its cancellation record."""

    async def _make(setup, age=timedelta(days=1), **overrides):
        booking = await make_booking(setup, is_active=False, status="cancelled", **overrides)
        async with session_factory() as session:
            session.add(CancellationRecord(
                booking_id=booking.id,
                hold_id=booking.hold_id,
                reason="Auto-cancellation",
                supplier_cancellation_id=f"CX-{booking.confirmation_ref}",
                created_at=utcnow() - age,
            ))
            await session.commit()
        return booking

    return _make


@pytest.mark.parametrize("value,expected", [
    ("cancelled", True),
    ("Canceled", True),
    (" CX ", True),
    ("confirmed", False),
    ("pending", False),
])
def test_cancelled_status_spellings(value, expected):
    assert is_cancelled_status(value) is expected


@pytest.mark.asyncio
async def test_agreeing_states_raise_nothing(
    session_factory, aggregator, innstant, notifier, make_hotel, make_booking, make_cancelled
):
    setup = await make_hotel()
    await make_cancelled(setup, confirmation_ref="BK-C")
    await make_booking(setup, confirmation_ref="BK-A")
    innstant.statuses = {"BK-C": status("Cancelled")}
    worker = make_worker(session_factory, aggregator, notifier)

    await worker.process()

    assert innstant.calls == [("get_status", "BK-C"), ("get_status", "BK-A")]
    assert worker.counters == {"checked": 2, "discrepancies": 0, "lookup_failures": 0}
    assert worker.last_discrepancies == []
    assert worker.details()["last_checked_at"] is not None
    assert notifier.messages == []


@pytest.mark.asyncio
async def test_disagreements_in_both_directions_are_reported(
    session_factory, aggregator, innstant, notifier, make_hotel, make_booking, make_cancelled
):
    setup = await make_hotel()
    cancelled = await make_cancelled(setup, confirmation_ref="BK-C")
    active = await make_booking(setup, confirmation_ref="BK-A")
    innstant.statuses = {"BK-C": status("confirmed"), "BK-A": status("CX")}
    worker = make_worker(session_factory, aggregator, notifier)

    await worker.process()

    found = {d.booking_id: d for d in worker.last_discrepancies}
    assert found[cancelled.id].message == "Cancelled locally but supplier shows status: confirmed"
    assert found[cancelled.id].local_status == "cancelled"
    assert found[active.id].message == "Active locally but supplier shows CANCELLED"
    assert found[active.id].supplier_status == "CX"
    assert worker.counters["discrepancies"] == 2

    alerts = notifier.matching("*Cancellation Tracking Discrepancies*")
    assert len(alerts) == 1
    assert "Checked: 2\nDiscrepancies: 2" in alerts[0]
    assert "Sea View Tel Aviv (innstant BK-A)" in alerts[0]
    assert len(worker.details()["last_discrepancies"]) == 2


@pytest.mark.asyncio
async def test_failed_lookups_are_not_discrepancies(
    session_factory, aggregator, innstant, notifier, make_hotel, make_cancelled
):
    setup = await make_hotel()
    await make_cancelled(setup, confirmation_ref="BK-C")
    innstant.statuses = {"BK-C": StatusResult(success=False, supplier="innstant", error="Read timed out")}
    worker = make_worker(session_factory, aggregator, notifier)

    await worker.process()

    assert worker.counters == {"checked": 0, "discrepancies": 0, "lookup_failures": 1}
    assert notifier.messages == []


@pytest.mark.asyncio
async def test_only_recent_supplier_bookings_within_limit_are_checked(
    session_factory, aggregator, innstant, goglobal, notifier, make_hotel, make_booking, make_cancelled
):
    setup = await make_hotel()
    today = date.today()
    await make_cancelled(setup, confirmation_ref="OLD", age=timedelta(days=10))
    await make_cancelled(setup, confirmation_ref="MANUAL", provider=None)
    await make_cancelled(setup, confirmation_ref="RECENT")
    await make_booking(setup, confirmation_ref="PAST", start_date=today - timedelta(days=2))
    await make_booking(setup, confirmation_ref="GG", provider="goglobal")
    await make_booking(setup, confirmation_ref="LATER", start_date=today + timedelta(days=60))
    await make_booking(setup, confirmation_ref="SOON", start_date=today + timedelta(days=10))
    await make_booking(setup, confirmation_ref="NEXT", start_date=today + timedelta(days=20))
    goglobal.configured = False
    worker = make_worker(session_factory, aggregator, notifier, lookback_days=7, active_limit=3)

    await worker.process()

    # GG (day 30) takes a slot in the limit but its supplier cannot be asked
    assert innstant.calls == [("get_status", "RECENT"), ("get_status", "SOON"), ("get_status", "NEXT")]
    assert goglobal.calls == []
    assert worker.counters["checked"] == 3
