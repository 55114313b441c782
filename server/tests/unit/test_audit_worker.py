"""Unit tests for the audit worker."""

from datetime import date, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from roombroker.clients import ota
from roombroker.models import Booking, PushLogEntry
from roombroker.schemas.audit import AuditProblemType
from roombroker.schemas.channel import RateUpdate
from roombroker.workers.audit_worker import AuditWorker, find_overlaps, truncate_price

D = date(2026, 11, 1)


async def _log_push(session_factory, booking, push_type="rate", success=True, pushed_price=None, request_body="<x/>"):
    async with session_factory() as session:
        session.add(PushLogEntry(
            booking_id=booking.id,
            push_type=push_type,
            request_body=request_body,
            success=success,
            pushed_price=pushed_price,
        ))
        await session.commit()


def _stay(hotel_id, start_offset, nights, category_id=None, board_id=None) -> Booking:
    return Booking(
        id=uuid4(),
        hotel_id=hotel_id,
        category_id=category_id,
        board_id=board_id,
        start_date=D + timedelta(days=start_offset),
        end_date=D + timedelta(days=start_offset + nights),
        price=100.0,
    )


def test_truncate_price_truncates_not_rounds():
    assert truncate_price(120.07) == Decimal("120.0")
    assert truncate_price(120.04) == Decimal("120.0")
    assert truncate_price(119.99) == Decimal("119.9")


def test_find_overlaps_reports_each_overlapping_pair():
    hotel_id = uuid4()
    a = _stay(hotel_id, 0, 3)
    b = _stay(hotel_id, 2, 3)
    c = _stay(hotel_id, 1, 1)
    back_to_back = _stay(hotel_id, 5, 2)

    problems = find_overlaps([a, b, c, back_to_back])

    pairs = {frozenset((p.booking_id, p.other_booking_id)) for p in problems}
    assert pairs == {frozenset((a.id, b.id)), frozenset((a.id, c.id))}
    assert all(p.type == AuditProblemType.OVERLAPPING_BOOKINGS for p in problems)


def test_find_overlaps_ignores_different_room_types():
    hotel_id = uuid4()
    a = _stay(hotel_id, 0, 3, category_id=uuid4())
    b = _stay(hotel_id, 0, 3, category_id=uuid4())
    other_hotel = _stay(uuid4(), 0, 3)

    assert find_overlaps([a, b, other_hotel]) == []


@pytest.mark.asyncio
async def test_audit_detects_each_problem_type(session_factory, notifier, make_hotel, make_booking):
    mapped = await make_hotel()
    unmapped = await make_hotel(name="Desert Lodge", channel_hotel_code=None)

    in_tolerance = await make_booking(mapped, start_date=D, push_price=120.07)
    await _log_push(session_factory, in_tolerance, pushed_price=120.04)

    drifted = await make_booking(mapped, start_date=D + timedelta(days=10), push_price=120.2)
    await _log_push(session_factory, drifted, pushed_price=119.9)

    never_pushed = await make_booking(mapped, start_date=D + timedelta(days=20))
    await _log_push(session_factory, never_pushed, success=False)

    no_mapping = await make_booking(unmapped, start_date=D)

    worker = AuditWorker(session_factory, notifier)
    await worker.process()

    by_booking = {p.booking_id: p for p in worker.get_problems()}
    assert in_tolerance.id not in by_booking
    assert by_booking[drifted.id].type == AuditProblemType.PRICE_MISMATCH
    assert (by_booking[drifted.id].expected, by_booking[drifted.id].actual) == (120.2, 119.9)
    assert by_booking[never_pushed.id].type == AuditProblemType.MISSING_PUSH
    assert by_booking[never_pushed.id].hotel_code == "SEAVIEW"
    assert by_booking[never_pushed.id].room_code == "DLX"
    assert by_booking[no_mapping.id].type == AuditProblemType.MISSING_CHANNEL_MAPPING
    assert len(by_booking) == 3

    report = worker.get_report()
    assert report.total == 3
    assert report.by_type == {"price_mismatch": 1, "missing_push": 1, "missing_channel_mapping": 1}
    assert report.generated_at is not None
    assert len(notifier.matching("*Audit Report*")) == 1


@pytest.mark.asyncio
async def test_price_read_from_request_when_not_recorded(session_factory, make_hotel, make_booking):
    setup = await make_hotel()
    booking = await make_booking(setup, push_price=150.0)
    message = ota.build_rate_message(
        RateUpdate(hotel_code="SEAVIEW", room_code="DLX", start_date=D, end_date=D, price=140.0), "R", "C", "EUR"
    )
    await _log_push(session_factory, booking, request_body=message)

    problems = await AuditWorker(session_factory).audit()

    assert [(p.type, p.actual) for p in problems] == [(AuditProblemType.PRICE_MISMATCH, 140.0)]


@pytest.mark.asyncio
async def test_drift_is_measured_against_resale_price_not_purchase_price(session_factory, make_hotel, make_booking):
    setup = await make_hotel()
    at_resale = await make_booking(setup, start_date=D, price=100.0, push_price=150.0)
    await _log_push(session_factory, at_resale, pushed_price=150.0)
    at_cost = await make_booking(setup, start_date=D + timedelta(days=10), price=100.0, push_price=150.0)
    await _log_push(session_factory, at_cost, pushed_price=100.0)

    problems = await AuditWorker(session_factory).audit()

    assert [(p.booking_id, p.expected, p.actual) for p in problems] == [(at_cost.id, 150.0, 100.0)]


@pytest.mark.asyncio
async def test_availability_only_push_is_not_missing(session_factory, make_hotel, make_booking):
    setup = await make_hotel()
    booking = await make_booking(setup)
    await _log_push(session_factory, booking, push_type="availability")

    assert await AuditWorker(session_factory).audit() == []


@pytest.mark.asyncio
async def test_inactive_bookings_are_not_audited(session_factory, make_hotel, make_booking):
    setup = await make_hotel()
    await make_booking(setup, is_active=False, status="cancelled")

    worker = AuditWorker(session_factory)
    assert await worker.audit() == []
    assert worker.total_audited == 0


@pytest.mark.asyncio
async def test_failed_run_keeps_previous_problems(session_factory, notifier, make_hotel, make_booking):
    setup = await make_hotel()
    await make_booking(setup)
    worker = AuditWorker(session_factory, notifier)
    await worker.run_once()
    previous = worker.get_problems()
    assert len(previous) == 1

    async def broken_audit():
        raise RuntimeError("database unavailable")

    worker.audit = broken_audit
    await worker.run_once()

    assert worker.stats.failures == 1
    assert worker.get_problems() == previous


@pytest.mark.asyncio
async def test_clean_audit_sends_no_report(session_factory, notifier):
    worker = AuditWorker(session_factory, notifier)

    await worker.process()

    assert worker.get_report().total == 0
    assert notifier.messages == []
