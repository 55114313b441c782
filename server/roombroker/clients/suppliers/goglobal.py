"""GoGlobal supplier client."""

import logging
from typing import Optional

import httpx

from ...core.config import Settings
from ...schemas.supplier import (
    CancelResult,
    ConfirmRequest,
    ConfirmResult,
    HoldRequest,
    HoldResult,
    SearchCriteria,
    SearchResult,
    StatusResult,
)
from .base import SupplierClient

logger = logging.getLogger(__name__)


class GoGlobalClient(SupplierClient):
    """Secondary supplier, authenticated with a bearer API key."""

    name = "goglobal"

    def __init__(
        self,
        api_url: str,
        api_key: Optional[str],
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(timeout=timeout, client=client)
        self.api_url = api_url.rstrip("/")
        self.api_key = api_key

    @classmethod
    def from_settings(cls, settings: Settings, client: Optional[httpx.AsyncClient] = None) -> "GoGlobalClient":
        return cls(
            api_url=settings.goglobal_api_url,
            api_key=settings.goglobal_api_key,
            timeout=settings.supplier_http_timeout_seconds,
            client=client,
        )

    def is_configured(self) -> bool:
        return bool(self.api_url and self.api_key)

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    async def search(self, criteria: SearchCriteria) -> SearchResult:
        if not self.is_configured():
            logger.warning("GoGlobal not configured - skipping search")
            return SearchResult(success=False, supplier=self.name, error=self._not_configured())

        payload = {
            "checkIn": criteria.check_in.isoformat(),
            "checkOut": criteria.check_out.isoformat(),
            "currency": criteria.currency,
            "hotelIds": criteria.hotel_ids,
            "rooms": [{
                "adults": criteria.adults,
                "children": [{"age": age} for age in criteria.children],
            }],
        }

        try:
            data = await self._request("POST", f"{self.api_url}/api/v1/search", json=payload)
        except (httpx.HTTPError, ValueError) as e:
            return SearchResult(success=False, supplier=self.name, error=self._log_failure("search", e))

        return SearchResult(success=True, supplier=self.name, hotels=self._parse_hotels(data))

    async def hold(self, request: HoldRequest) -> HoldResult:
        if not self.is_configured():
            return HoldResult(success=False, supplier=self.name, error=self._not_configured())

        payload = {
            "token": request.search_token,
            "hotelId": request.hotel_id,
            "roomId": request.room_id,
            "rateId": request.rate_id,
            "checkIn": request.check_in.isoformat(),
            "checkOut": request.check_out.isoformat(),
            "rooms": [{
                "adults": request.adults,
                "children": [{"age": age} for age in request.children],
            }],
        }

        try:
            data = await self._request("POST", f"{self.api_url}/api/v1/prebook", json=payload)
        except (httpx.HTTPError, ValueError) as e:
            return HoldResult(success=False, supplier=self.name, error=self._log_failure("prebook", e))

        policy = data.get("cancellationPolicy") or {}
        hold_id = data.get("preBookId", data.get("id"))
        return HoldResult(
            success=True,
            supplier=self.name,
            hold_id=str(hold_id) if hold_id is not None else None,
            price=data.get("price"),
            currency=data.get("currency"),
            token=data.get("token") or (str(hold_id) if hold_id is not None else None),
            cancellation_type=policy.get("type"),
            cancellation_deadline=policy.get("deadline"),
        )

    async def confirm(self, request: ConfirmRequest) -> ConfirmResult:
        if not self.is_configured():
            return ConfirmResult(success=False, supplier=self.name, error=self._not_configured())

        guest = request.guest
        payload = {
            "preBookId": request.hold_id,
            "guest": {
                "name": f"{guest.first_name} {guest.last_name}",
                "email": guest.email,
                "phone": guest.phone,
            },
        }

        try:
            data = await self._request("POST", f"{self.api_url}/api/v1/book", json=payload)
        except (httpx.HTTPError, ValueError) as e:
            return ConfirmResult(success=False, supplier=self.name, error=self._log_failure("book", e))

        booking_id = data.get("bookingId") or data.get("confirmationNumber")
        return ConfirmResult(
            success=True,
            supplier=self.name,
            booking_id=str(booking_id) if booking_id is not None else None,
            confirmation_number=data.get("confirmationNumber"),
            supplier_reference=data.get("supplierReference"),
            status=data.get("status"),
        )

    async def cancel(self, reference: str) -> CancelResult:
        if not self.is_configured():
            return CancelResult(success=False, supplier=self.name, error=self._not_configured())

        logger.info("GoGlobal cancel", extra={"reference": reference})
        try:
            data = await self._request("DELETE", f"{self.api_url}/api/v1/bookings/{reference}")
        except (httpx.HTTPError, ValueError) as e:
            return CancelResult(success=False, supplier=self.name, error=self._log_failure("cancel", e))

        cancellation_id = data.get("cancellationId", reference)
        return CancelResult(
            success=True,
            supplier=self.name,
            cancellation_id=str(cancellation_id),
            refund_amount=data.get("refundAmount"),
            fee=data.get("cancellationFee"),
        )

    async def get_status(self, reference: str) -> StatusResult:
        if not self.is_configured():
            return StatusResult(success=False, supplier=self.name, error=self._not_configured())

        try:
            data = await self._request("GET", f"{self.api_url}/api/v1/bookings/{reference}")
        except (httpx.HTTPError, ValueError) as e:
            return StatusResult(success=False, supplier=self.name, error=self._log_failure("get_status", e))

        return StatusResult(success=True, supplier=self.name, status=data.get("status"), data=data)
