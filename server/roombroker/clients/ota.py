"""
OTA 2003/05 SOAP messages for the downstream channel.

Outbound messages are built as element trees and serialized; inbound
responses are parsed with the same library, never matched with regexes.
"""

import xml.etree.ElementTree as ET
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from ..schemas.channel import AvailabilityUpdate, RateUpdate

SOAP_NS = "http://schemas.xmlsoap.org/soap/envelope/"
OTA_NS = "http://www.opentravel.org/OTA/2003/05"
SOAP_ACTION = OTA_NS

ET.register_namespace("soap", SOAP_NS)
ET.register_namespace("", OTA_NS)

XML_DECLARATION = '<?xml version="1.0" encoding="UTF-8"?>\n'


@dataclass
class OtaResponse:
    success: bool
    error: Optional[str] = None


def _ota(tag: str) -> str:
    return f"{{{OTA_NS}}}{tag}"


def _local(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _envelope(root_tag: str, requestor_id: str, company_code: str, timestamp: Optional[datetime]):
    """SOAP envelope holding an OTA request root with its POS block."""
    envelope = ET.Element(f"{{{SOAP_NS}}}Envelope")
    body = ET.SubElement(envelope, f"{{{SOAP_NS}}}Body")

    stamp = (timestamp or datetime.now(timezone.utc)).isoformat()
    request = ET.SubElement(body, _ota(root_tag), {"Version": "1.0", "TimeStamp": stamp})

    pos = ET.SubElement(request, _ota("POS"))
    source = ET.SubElement(pos, _ota("Source"))
    requestor = ET.SubElement(source, _ota("RequestorID"), {"Type": "10", "ID": requestor_id})
    ET.SubElement(requestor, _ota("CompanyName"), {"Code": company_code})
    return envelope, request


def _serialize(envelope: ET.Element) -> str:
    return XML_DECLARATION + ET.tostring(envelope, encoding="unicode")


def build_availability_message(
    update: AvailabilityUpdate,
    requestor_id: str,
    company_code: str,
    timestamp: Optional[datetime] = None,
) -> str:
    """OTA_HotelAvailNotifRQ opening (available > 0) or closing the room."""
    envelope, request = _envelope("OTA_HotelAvailNotifRQ", requestor_id, company_code, timestamp)

    messages = ET.SubElement(request, _ota("AvailStatusMessages"), {"HotelCode": update.hotel_code})
    message = ET.SubElement(messages, _ota("AvailStatusMessage"))
    ET.SubElement(message, _ota("StatusApplicationControl"), {
        "Start": update.start_date.isoformat(),
        "End": update.end_date.isoformat(),
        "InvTypeCode": update.room_code,
        "RatePlanCode": update.rate_plan_code,
    })
    stays = ET.SubElement(message, _ota("LengthsOfStay"))
    ET.SubElement(stays, _ota("LengthOfStay"), {
        "MinMaxMessageType": "SetMinLOS",
        "Time": "1",
        "TimeUnit": "Day",
    })
    ET.SubElement(message, _ota("RestrictionStatus"), {
        "Status": "Open" if update.available > 0 else "Close",
    })
    return _serialize(envelope)


def build_rate_message(
    update: RateUpdate,
    requestor_id: str,
    company_code: str,
    currency: str,
    timestamp: Optional[datetime] = None,
) -> str:
    """OTA_HotelRatePlanNotifRQ overlaying the price after tax for two guests."""
    envelope, request = _envelope("OTA_HotelRatePlanNotifRQ", requestor_id, company_code, timestamp)

    plans = ET.SubElement(request, _ota("RatePlans"), {"HotelCode": update.hotel_code})
    plan = ET.SubElement(plans, _ota("RatePlan"), {
        "RatePlanCode": update.rate_plan_code,
        "RatePlanNotifType": "Overlay",
    })
    rates = ET.SubElement(plan, _ota("Rates"))
    rate = ET.SubElement(rates, _ota("Rate"), {
        "InvTypeCode": update.room_code,
        "Start": update.start_date.isoformat(),
        "End": update.end_date.isoformat(),
    })
    amounts = ET.SubElement(rate, _ota("BaseByGuestAmts"))
    ET.SubElement(amounts, _ota("BaseByGuestAmt"), {
        "AmountAfterTax": f"{update.price:.2f}",
        "CurrencyCode": update.currency or currency,
        "NumberOfGuests": "2",
    })
    return _serialize(envelope)


def parse_response(body: str) -> OtaResponse:
    """
    Decide whether a channel response reports success.

    Success means a ``Success`` element exists anywhere in the document.
    Otherwise the error text comes from the first ``Error`` element: its
    ``ShortText`` attribute, then its text, then its ``Code`` attribute. A
    SOAP fault string is used when there is no ``Error`` element.
    """
    try:
        root = ET.fromstring(body)
    except ET.ParseError as e:
        return OtaResponse(success=False, error=f"Malformed response: {e}")

    error_element = None
    fault = None
    for element in root.iter():
        name = _local(element.tag)
        if name == "Success":
            return OtaResponse(success=True)
        if name == "Error" and error_element is None:
            error_element = element
        elif name == "faultstring" and fault is None:
            fault = (element.text or "").strip() or None

    if error_element is not None:
        text = (error_element.text or "").strip()
        error = error_element.get("ShortText") or text or error_element.get("Code")
        return OtaResponse(success=False, error=error or "Unspecified channel error")

    return OtaResponse(success=False, error=fault or "Response has no Success element")


def extract_rate_amount(message: str) -> Optional[float]:
    """
    Price carried by a rate message.

    Read from the ``AmountAfterTax`` attribute of the first
    ``BaseByGuestAmt``, falling back to the element text.
    """
    try:
        root = ET.fromstring(message)
    except ET.ParseError:
        return None

    for element in root.iter():
        if _local(element.tag) != "BaseByGuestAmt":
            continue
        raw = element.get("AmountAfterTax") or (element.text or "").strip()
        try:
            return float(raw)
        except ValueError:
            return None
    return None
