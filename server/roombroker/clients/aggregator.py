"""Parallel search across upstream suppliers with merge and price ordering."""

import asyncio
import logging
import math
import time
from typing import Iterable, Optional, Sequence
from uuid import uuid4

from opentelemetry import trace

from ..core.observability import metrics_collector
from ..schemas.supplier import (
    AggregatedSearch,
    BestPrice,
    SearchCriteria,
    SearchResult,
    SupplierHotel,
    SupplierOutcome,
    SupplierRoom,
    SupplierStats,
)
from .suppliers.base import SupplierClient

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

DEFAULT_SEARCH_TIMEOUT_SECONDS = 25.0


def min_room_price(rooms: Iterable[SupplierRoom]) -> float:
    """Cheapest priced room, or ``inf`` when no room has a price."""
    prices = [room.price for room in rooms if room.price is not None]
    return min(prices) if prices else math.inf


def _hotel_key(hotel: SupplierHotel) -> tuple[str, str]:
    return hotel.hotel_id, hotel.name.casefold()


def merge_hotels(hotels: Sequence[SupplierHotel], best_price_only: bool = False) -> list[SupplierHotel]:
    """
    Group hotels offered by several suppliers and order them by price.

    Hotels are grouped by supplier-agnostic identity (id plus case-folded
    name). With ``best_price_only`` the cheapest hotel of each group is kept;
    otherwise rooms of the group are concatenated and every contributing
    supplier is recorded. The result is sorted by minimum room price, hotels
    without priced rooms last. Input objects are not modified.

    Args:
        hotels: Supplier-tagged hotels in arrival order
        best_price_only: Keep one hotel per group instead of merging rooms

    Returns:
        New list of new hotel objects
    """
    groups: dict[tuple[str, str], SupplierHotel] = {}

    for hotel in hotels:
        key = _hotel_key(hotel)
        existing = groups.get(key)

        if existing is None:
            groups[key] = hotel.model_copy(
                update={"rooms": list(hotel.rooms), "suppliers": list(hotel.suppliers)}
            )
        elif best_price_only:
            if min_room_price(hotel.rooms) < min_room_price(existing.rooms):
                groups[key] = hotel.model_copy(
                    update={"rooms": list(hotel.rooms), "suppliers": list(hotel.suppliers)}
                )
        else:
            suppliers = list(existing.suppliers)
            for supplier in hotel.suppliers:
                if supplier not in suppliers:
                    suppliers.append(supplier)
            groups[key] = existing.model_copy(
                update={"rooms": existing.rooms + list(hotel.rooms), "suppliers": suppliers}
            )

    # sorted() is stable, so equal prices keep arrival order
    return sorted(groups.values(), key=lambda h: min_room_price(h.rooms))


def find_best_price(hotels: Iterable[SupplierHotel]) -> Optional[BestPrice]:
    """Globally cheapest priced room, or None."""
    best: Optional[BestPrice] = None
    for hotel in hotels:
        for room in hotel.rooms:
            if room.price is None:
                continue
            if best is None or room.price < best.price:
                best = BestPrice(
                    price=room.price,
                    hotel_id=hotel.hotel_id,
                    hotel_name=hotel.name,
                    room=room,
                    supplier=room.supplier,
                )
    return best


def _tag(hotels: Iterable[SupplierHotel], supplier: str) -> list[SupplierHotel]:
    """Copies of ``hotels`` with every room attributed to ``supplier``."""
    return [
        hotel.model_copy(update={
            "rooms": [room.model_copy(update={"supplier": supplier}) for room in hotel.rooms],
            "suppliers": [supplier],
        })
        for hotel in hotels
    ]


class SupplierAggregator:
    """
    Fans a search out to every configured supplier and merges the answers.

    Each supplier call runs under its own timeout, so one slow or failing
    supplier never hides the results of the others. Hold, confirm, cancel
    and status calls are routed through :meth:`client_for`.
    """

    def __init__(
        self,
        clients: Sequence[SupplierClient],
        timeout_seconds: float = DEFAULT_SEARCH_TIMEOUT_SECONDS,
    ):
        self.clients: dict[str, SupplierClient] = {client.name: client for client in clients}
        self.timeout_seconds = timeout_seconds

    def client_for(self, provider: Optional[str]) -> Optional[SupplierClient]:
        """Client registered under ``provider`` (case-insensitive), or None."""
        if not provider:
            return None
        return self.clients.get(provider.lower())

    def supplier_stats(self) -> list[SupplierStats]:
        return [
            SupplierStats(name=name, configured=client.is_configured())
            for name, client in self.clients.items()
        ]

    async def close(self) -> None:
        for client in self.clients.values():
            await client.close()

    async def _search_one(
        self, client: SupplierClient, criteria: SearchCriteria, timeout: float
    ) -> tuple[SearchResult, int]:
        started = time.monotonic()
        try:
            result = await asyncio.wait_for(client.search(criteria), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(
                f"Supplier search timed out after {timeout}s",
                extra={"supplier": client.name, "timeout_seconds": timeout}
            )
            result = SearchResult(success=False, supplier=client.name, error="Search timeout")
        except Exception as e:
            logger.error(
                f"Supplier search raised: {e}",
                exc_info=True,
                extra={"supplier": client.name}
            )
            result = SearchResult(success=False, supplier=client.name, error=str(e))

        elapsed_ms = int((time.monotonic() - started) * 1000)
        metrics_collector.record_supplier_search(client.name, result.success)
        return result, elapsed_ms

    async def search(
        self,
        criteria: SearchCriteria,
        best_price_only: bool = False,
        timeout: Optional[float] = None,
        suppliers: Optional[Sequence[str]] = None,
    ) -> AggregatedSearch:
        """
        Search all (or the named) configured suppliers in parallel.

        Args:
            criteria: What to search for
            best_price_only: Keep only the cheapest offer per hotel
            timeout: Per-supplier timeout in seconds; defaults to the aggregator's
            suppliers: Restrict to these supplier names

        Returns:
            Per-supplier outcomes, merged hotels and the best price
        """
        search_id = f"multi_{uuid4().hex[:12]}"
        timeout = timeout if timeout is not None else self.timeout_seconds

        selected: list[SupplierClient] = []
        for name, client in self.clients.items():
            if suppliers is not None and name not in suppliers:
                continue
            if not client.is_configured():
                logger.warning(f"Supplier {name} not configured - skipping", extra={"supplier": name})
                continue
            selected.append(client)

        if not selected:
            return AggregatedSearch(search_id=search_id, success=False, error="No suppliers configured")

        with tracer.start_as_current_span("supplier_aggregator.search") as span:
            span.set_attribute("roombroker.search_id", search_id)
            span.set_attribute("roombroker.suppliers", [c.name for c in selected])

            outcomes = await asyncio.gather(
                *(self._search_one(client, criteria, timeout) for client in selected)
            )

            aggregated = AggregatedSearch(search_id=search_id, success=False)
            combined: list[SupplierHotel] = []

            for result, elapsed_ms in outcomes:
                aggregated.suppliers[result.supplier] = SupplierOutcome(
                    success=result.success,
                    hotel_count=len(result.hotels),
                    room_count=sum(len(h.rooms) for h in result.hotels),
                    error=result.error,
                    response_ms=elapsed_ms,
                )
                if result.success and result.hotels:
                    combined.extend(_tag(result.hotels, result.supplier))

            aggregated.success = bool(combined)
            if combined:
                aggregated.merged = merge_hotels(combined, best_price_only)
                aggregated.best_price = find_best_price(aggregated.merged)

            span.set_attribute("roombroker.result_count", len(aggregated.merged))

        logger.info(
            "Supplier search complete",
            extra={
                "search_id": search_id,
                "total_results": len(aggregated.merged),
                "suppliers": list(aggregated.suppliers),
                "has_results": aggregated.success,
            }
        )
        return aggregated
