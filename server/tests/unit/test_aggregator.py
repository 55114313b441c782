"""Unit tests for the supplier aggregator."""

import math
from datetime import date

import pytest

from roombroker.clients.aggregator import SupplierAggregator, find_best_price, merge_hotels, min_room_price
from roombroker.schemas.supplier import SearchCriteria, SupplierHotel, SupplierRoom

from conftest import FakeSupplier

CRITERIA = SearchCriteria(check_in=date(2026, 11, 1), check_out=date(2026, 11, 3), hotel_ids=["1001"])


def hotel(hotel_id: str, name: str, *prices, supplier: str = "innstant") -> SupplierHotel:
    return SupplierHotel(
        hotel_id=hotel_id,
        name=name,
        rooms=[SupplierRoom(room_id=f"{supplier}-{i}", price=p, supplier=supplier) for i, p in enumerate(prices)],
        suppliers=[supplier],
    )


def test_min_room_price_ignores_unpriced_rooms():
    assert min_room_price([SupplierRoom(price=None), SupplierRoom(price=80.0)]) == 80.0
    assert min_room_price([SupplierRoom(price=None)]) == math.inf
    assert min_room_price([]) == math.inf


def test_merge_groups_same_hotel_across_suppliers():
    """Same id and case-insensitively equal name merge into one hotel."""
    a = hotel("1001", "Sea View", 120.0, supplier="innstant")
    b = hotel("1001", "SEA VIEW", 95.0, supplier="goglobal")

    merged = merge_hotels([a, b])

    assert len(merged) == 1
    assert merged[0].suppliers == ["innstant", "goglobal"]
    assert [room.price for room in merged[0].rooms] == [120.0, 95.0]


def test_merge_keeps_different_hotels_apart_and_sorts_by_price():
    cheap = hotel("2002", "Harbour Inn", 70.0)
    dear = hotel("1001", "Sea View", 120.0)
    unpriced = hotel("3003", "No Prices", None)

    merged = merge_hotels([unpriced, dear, cheap])

    assert [h.hotel_id for h in merged] == ["2002", "1001", "3003"]


def test_merge_best_price_only_keeps_cheapest_offer():
    a = hotel("1001", "Sea View", 120.0, 130.0, supplier="innstant")
    b = hotel("1001", "Sea View", 95.0, supplier="goglobal")

    merged = merge_hotels([a, b], best_price_only=True)

    assert len(merged) == 1
    assert merged[0].suppliers == ["goglobal"]
    assert [room.price for room in merged[0].rooms] == [95.0]


def test_merge_does_not_mutate_inputs():
    a = hotel("1001", "Sea View", 120.0, supplier="innstant")
    b = hotel("1001", "Sea View", 95.0, supplier="goglobal")

    merge_hotels([a, b])

    assert len(a.rooms) == 1 and a.suppliers == ["innstant"]
    assert len(b.rooms) == 1 and b.suppliers == ["goglobal"]


def test_find_best_price():
    merged = merge_hotels([hotel("1001", "Sea View", 120.0), hotel("2002", "Harbour Inn", None, 99.0)])

    best = find_best_price(merged)

    assert best.price == 99.0
    assert best.hotel_id == "2002"
    assert find_best_price([hotel("1", "x", None)]) is None


@pytest.mark.asyncio
async def test_search_merges_results_from_all_suppliers():
    innstant = FakeSupplier("innstant", hotels=[hotel("1001", "Sea View", 120.0, 100.0)])
    goglobal = FakeSupplier("goglobal", hotels=[hotel("1001", "sea view", 95.0, supplier="whatever")])
    aggregator = SupplierAggregator([innstant, goglobal])

    result = await aggregator.search(CRITERIA)

    assert result.success
    assert result.search_id.startswith("multi_")
    assert set(result.suppliers) == {"innstant", "goglobal"}
    assert result.suppliers["innstant"].room_count == 2
    assert len(result.merged) == 1
    # rooms are attributed to the supplier that returned them
    assert {room.supplier for room in result.merged[0].rooms} == {"innstant", "goglobal"}
    assert result.best_price.price == 95.0
    assert result.best_price.supplier == "goglobal"


@pytest.mark.asyncio
async def test_search_timeout_does_not_hide_other_suppliers():
    slow = FakeSupplier("innstant", hotels=[hotel("1001", "Sea View", 50.0)], search_delay=0.5)
    fast = FakeSupplier("goglobal", hotels=[hotel("1001", "Sea View", 95.0)])
    aggregator = SupplierAggregator([slow, fast], timeout_seconds=0.05)

    result = await aggregator.search(CRITERIA)

    assert result.success
    assert not result.suppliers["innstant"].success
    assert result.suppliers["innstant"].error == "Search timeout"
    assert result.suppliers["goglobal"].success
    assert result.best_price.price == 95.0


@pytest.mark.asyncio
async def test_search_supplier_failure_is_reported_not_raised():
    broken = FakeSupplier("innstant", search_error="HTTP 500")
    working = FakeSupplier("goglobal", hotels=[hotel("1001", "Sea View", 95.0)])

    result = await SupplierAggregator([broken, working]).search(CRITERIA)

    assert result.success
    assert result.suppliers["innstant"].error == "HTTP 500"


@pytest.mark.asyncio
async def test_search_skips_unconfigured_suppliers():
    unconfigured = FakeSupplier("innstant", configured=False, hotels=[hotel("1001", "Sea View", 1.0)])
    configured = FakeSupplier("goglobal", hotels=[hotel("1001", "Sea View", 95.0)])

    result = await SupplierAggregator([unconfigured, configured]).search(CRITERIA)

    assert list(result.suppliers) == ["goglobal"]
    assert unconfigured.operations == []


@pytest.mark.asyncio
async def test_search_without_configured_suppliers():
    result = await SupplierAggregator([FakeSupplier("innstant", configured=False)]).search(CRITERIA)

    assert not result.success
    assert result.error == "No suppliers configured"
    assert result.merged == []


@pytest.mark.asyncio
async def test_search_restricted_to_named_suppliers(innstant, goglobal):
    await SupplierAggregator([innstant, goglobal]).search(CRITERIA, suppliers=["goglobal"])

    assert innstant.operations == []
    assert goglobal.operations == ["search"]


def test_client_for_is_case_insensitive(aggregator, innstant):
    assert aggregator.client_for("Innstant") is innstant
    assert aggregator.client_for("hotelbeds") is None
    assert aggregator.client_for(None) is None
