"""Common interface and response normalization for upstream suppliers."""

import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

import httpx

from ...schemas.supplier import (
    CancellationPolicy,
    CancelResult,
    ConfirmRequest,
    ConfirmResult,
    HoldRequest,
    HoldResult,
    SearchCriteria,
    SearchResult,
    StatusResult,
    SupplierHotel,
    SupplierRoom,
)

logger = logging.getLogger(__name__)


class SupplierClient(ABC):
    """
    Uniform async interface to one upstream supplier.

    Operations never raise for transport or protocol problems; they return a
    result with ``success=False`` and an ``error`` message instead.
    """

    name: str = "supplier"

    def __init__(self, timeout: float = 30.0, client: Optional[httpx.AsyncClient] = None):
        """
        Args:
            timeout: Per-request timeout in seconds
            client: Pre-built HTTP client, mainly for tests
        """
        self.timeout = timeout
        self._client = client

    @abstractmethod
    def is_configured(self) -> bool:
        """Return True if credentials and URLs are present."""

    @abstractmethod
    def _headers(self) -> dict[str, str]:
        """Authentication headers for every request."""

    @abstractmethod
    async def search(self, criteria: SearchCriteria) -> SearchResult:
        pass

    @abstractmethod
    async def hold(self, request: HoldRequest) -> HoldResult:
        pass

    @abstractmethod
    async def confirm(self, request: ConfirmRequest) -> ConfirmResult:
        pass

    @abstractmethod
    async def cancel(self, reference: str) -> CancelResult:
        pass

    @abstractmethod
    async def get_status(self, reference: str) -> StatusResult:
        pass

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _request(self, method: str, url: str, json: Any = None) -> dict:
        """
        Send a JSON request and return the decoded body.

        Raises:
            httpx.HTTPError: On transport failure or non-2xx status
            ValueError: If the body is not JSON
        """
        client = await self._get_client()
        response = await client.request(method, url, json=json, headers=self._headers())
        response.raise_for_status()
        if not response.content:
            return {}
        return response.json()

    def _not_configured(self) -> str:
        return f"{self.name} API not configured"

    def _log_failure(self, operation: str, error: Exception) -> str:
        """Log a failed call and return the message for the result."""
        detail = None
        if isinstance(error, httpx.HTTPStatusError):
            detail = error.response.text[:500]
        logger.error(
            f"{self.name} {operation} failed: {error}",
            extra={"supplier": self.name, "operation": operation, "detail": detail}
        )
        return str(error) or error.__class__.__name__

    def _parse_hotels(self, data: dict) -> list[SupplierHotel]:
        """Normalize the hotel list of a search response."""
        token = data.get("token") or data.get("searchId")
        hotels = []
        for raw in data.get("hotels") or []:
            hotel_id = raw.get("hotelId", raw.get("id"))
            if hotel_id is None:
                continue
            hotels.append(SupplierHotel(
                hotel_id=str(hotel_id),
                name=raw.get("hotelName") or raw.get("name") or "",
                search_token=raw.get("searchToken") or token,
                rooms=[self._parse_room(room) for room in raw.get("rooms") or []],
                suppliers=[self.name],
            ))
        return hotels

    def _parse_room(self, raw: dict) -> SupplierRoom:
        price = raw.get("price")
        if price is None:
            price = raw.get("totalPrice")
        room_id = raw.get("roomId", raw.get("id"))
        rate_id = raw.get("rateId")
        return SupplierRoom(
            room_id=str(room_id) if room_id is not None else None,
            rate_id=str(rate_id) if rate_id is not None else None,
            name=raw.get("roomName") or raw.get("name"),
            category_name=raw.get("categoryName") or raw.get("category"),
            board_name=raw.get("boardName") or raw.get("boardType") or raw.get("mealPlan"),
            price=price,
            currency=raw.get("currency") or "EUR",
            cancellation_policy=self._parse_policy(raw),
            supplier=self.name,
        )

    @staticmethod
    def _parse_policy(raw: dict) -> Optional[CancellationPolicy]:
        policy = raw.get("cancellationPolicy")
        deadline = raw.get("cancellationDeadline")
        if not policy and not deadline:
            return None

        policy = dict(policy or {})
        frames = []
        for frame in policy.get("frames") or []:
            frames.append({
                "starts_at": frame.get("from"),
                "ends_at": frame.get("to"),
                "penalty": frame.get("penalty"),
            })
        return CancellationPolicy(
            type=policy.get("type"),
            deadline=policy.get("deadline") or deadline,
            frames=frames,
        )
