"""Innstant supplier client."""

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


class InnstantClient(SupplierClient):
    """
    Innstant hotel API.

    Search goes to the connect host; prebook, confirm, cancel and status go
    to the book host. Requests carry the aether access token and
    application key headers.
    """

    name = "innstant"

    def __init__(
        self,
        search_url: str,
        book_url: str,
        access_token: Optional[str],
        application_key: Optional[str],
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(timeout=timeout, client=client)
        self.search_url = search_url.rstrip("/")
        self.book_url = book_url.rstrip("/")
        self.access_token = access_token
        self.application_key = application_key

    @classmethod
    def from_settings(cls, settings: Settings, client: Optional[httpx.AsyncClient] = None) -> "InnstantClient":
        return cls(
            search_url=settings.innstant_search_url,
            book_url=settings.innstant_book_url,
            access_token=settings.innstant_access_token,
            application_key=settings.innstant_application_key,
            timeout=settings.supplier_http_timeout_seconds,
            client=client,
        )

    def is_configured(self) -> bool:
        return bool(self.search_url and self.book_url and self.access_token and self.application_key)

    def _headers(self) -> dict[str, str]:
        return {
            "aether-access-token": self.access_token or "",
            "aether-application-key": self.application_key or "",
            "content-type": "application/json",
        }

    async def search(self, criteria: SearchCriteria) -> SearchResult:
        if not self.is_configured():
            return SearchResult(success=False, supplier=self.name, error=self._not_configured())

        payload = {
            "checkIn": criteria.check_in.isoformat(),
            "checkOut": criteria.check_out.isoformat(),
            "hotelIds": criteria.hotel_ids,
            "rooms": [{
                "adults": criteria.adults,
                "children": [{"age": age} for age in criteria.children],
            }],
            "nationality": criteria.nationality,
            "currency": criteria.currency,
        }
        logger.info(
            "Innstant search",
            extra={"hotel_ids": criteria.hotel_ids, "check_in": payload["checkIn"], "check_out": payload["checkOut"]}
        )

        try:
            data = await self._request("POST", f"{self.search_url}/api/v1/hotels/search", json=payload)
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
        logger.info("Innstant prebook", extra={"hotel_id": request.hotel_id, "room_id": request.room_id})

        try:
            data = await self._request("POST", f"{self.book_url}/api/v1/booking/prebook", json=payload)
        except (httpx.HTTPError, ValueError) as e:
            return HoldResult(success=False, supplier=self.name, error=self._log_failure("prebook", e))

        policy = data.get("cancellationPolicy") or {}
        hold_id = data.get("preBookId")
        return HoldResult(
            success=True,
            supplier=self.name,
            hold_id=str(hold_id) if hold_id is not None else None,
            price=data.get("price"),
            currency=data.get("currency"),
            token=data.get("token"),
            cancellation_type=policy.get("type"),
            cancellation_deadline=policy.get("deadline"),
        )

    async def confirm(self, request: ConfirmRequest) -> ConfirmResult:
        if not self.is_configured():
            return ConfirmResult(success=False, supplier=self.name, error=self._not_configured())

        guest = request.guest
        payload = {
            "token": request.token,
            "guests": [{
                "title": guest.title,
                "firstName": guest.first_name,
                "lastName": guest.last_name,
                "email": guest.email,
                "phone": guest.phone,
            }],
            "specialRequests": "",
            "paymentInfo": None,
        }

        try:
            data = await self._request("POST", f"{self.book_url}/api/v1/booking/confirm", json=payload)
        except (httpx.HTTPError, ValueError) as e:
            return ConfirmResult(success=False, supplier=self.name, error=self._log_failure("confirm", e))

        booking_id = data.get("bookingId")
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

        logger.info("Innstant cancel", extra={"reference": reference})
        try:
            data = await self._request("POST", f"{self.book_url}/api/v1/booking/cancel", json={"bookingId": reference})
        except (httpx.HTTPError, ValueError) as e:
            return CancelResult(success=False, supplier=self.name, error=self._log_failure("cancel", e))

        cancellation_id = data.get("cancellationId")
        return CancelResult(
            success=True,
            supplier=self.name,
            cancellation_id=str(cancellation_id) if cancellation_id is not None else None,
            refund_amount=data.get("refundAmount"),
            fee=data.get("cancellationFee"),
        )

    async def get_status(self, reference: str) -> StatusResult:
        if not self.is_configured():
            return StatusResult(success=False, supplier=self.name, error=self._not_configured())

        try:
            data = await self._request("GET", f"{self.book_url}/api/v1/booking/{reference}")
        except (httpx.HTTPError, ValueError) as e:
            return StatusResult(success=False, supplier=self.name, error=self._log_failure("get_status", e))

        return StatusResult(success=True, supplier=self.name, status=data.get("status"), data=data)
