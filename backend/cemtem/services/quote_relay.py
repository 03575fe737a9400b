"""
Quote Relay — persist a vendor quote and forward it to the buyer.

The buyer is reached on the inquiry's own platform and address. For a web
buyer that address is a chat session id, which the web transport maps to the
session's open sockets.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional

from cemtem.core.exceptions import InquiryNotFoundError, StorageError, VendorNotFoundError
from cemtem.models.inquiry import Inquiry
from cemtem.models.vendor import Vendor
from cemtem.schemas.messaging import Channel, DeliveryResult
from cemtem.schemas.quote import QuoteLineItem, VendorQuote
from cemtem.services.identifiers import normalize_inquiry_id
from cemtem.services.messenger import Messenger
from cemtem.services.quote_format import format_delivery, format_grouped, material_label
from cemtem.services.storage import Storage

logger = logging.getLogger(__name__)


@dataclass
class RelayResult:
    inquiry_id: str
    vendor_id: str
    responses_saved: int
    buyer_delivery: Optional[DeliveryResult] = None


def _line_material(item: QuoteLineItem, inquiry: Inquiry) -> str:
    return item.material or inquiry.material


def _line_label(item: QuoteLineItem, inquiry: Inquiry) -> str:
    return item.item or material_label(_line_material(item, inquiry))


def _stored_material(item: QuoteLineItem, inquiry: Inquiry) -> str:
    """e.g. "cement - OPC Grade 43"; free-text quotes store the inquiry material."""
    if item.material and item.item:
        return f"{item.material} - {item.item}"
    return _line_material(item, inquiry)


def build_buyer_message(inquiry: Inquiry, vendor: Vendor, line_items: List[QuoteLineItem]) -> str:
    first = line_items[0]
    rows = format_grouped(
        (_line_material(li, inquiry), _line_label(li, inquiry), li.rate, li.unit)
        for li in line_items
    )
    return (
        "🏗️ New Quote Received!\n\n"
        f"For your inquiry: {material_label(inquiry.material).upper()}\n"
        f"📍 City: {inquiry.city}\n"
        f"📦 Quantity: {inquiry.quantity or 'Not specified'}\n\n"
        f"💼 Vendor: {vendor.name}\n"
        f"📞 Contact: {vendor.phone}\n\n"
        f"{rows}\n\n"
        f"📊 GST: {first.gst:g}%\n"
        f"🚚 Delivery: {format_delivery(first.delivery, first.delivery_note)}\n\n"
        f"Inquiry ID: {inquiry.inquiry_id}\n\n"
        "More quotes may follow from other vendors!"
    )


class QuoteRelay:
    def __init__(self, storage: Storage, messenger: Messenger):
        self.storage = storage
        self.messenger = messenger

    async def relay(self, quote: VendorQuote) -> RelayResult:
        """
        Raises:
            VendorNotFoundError: sender is not a registered vendor
            InquiryNotFoundError: inquiry id does not resolve
            StorageError: persisting the quote failed
        """
        vendor = await self.storage.get_vendor_by_channel_id(quote.vendor_address)
        if not vendor:
            raise VendorNotFoundError(quote.vendor_address)

        inquiry = await self.storage.get_inquiry_by_id(normalize_inquiry_id(quote.inquiry_id))
        if not inquiry:
            raise InquiryNotFoundError(quote.inquiry_id)

        if not quote.line_items:
            raise ValueError(f"quote for {inquiry.inquiry_id} has no line items")

        for item in quote.line_items:
            await self.storage.create_price_response(
                vendor_id=vendor.vendor_id,
                inquiry_id=inquiry.inquiry_id,
                material=_stored_material(item, inquiry),
                price=item.rate,
                unit=item.unit,
                gst=item.gst,
                delivery_charge=item.delivery,
            )
        await self.storage.increment_inquiry_responses(inquiry.inquiry_id)
        logger.info(
            f"[Relay] Saved {len(quote.line_items)} price responses: "
            f"vendor={vendor.vendor_id} inquiry={inquiry.inquiry_id}"
        )

        await self._update_vendor_stats(vendor)

        delivery = await self.messenger.send(
            Channel(inquiry.platform),
            inquiry.buyer_address,
            build_buyer_message(inquiry, vendor, quote.line_items),
        )
        if delivery.ok:
            logger.info(f"[Relay] Quote forwarded to buyer for inquiry {inquiry.inquiry_id}")
        else:
            logger.error(f"[Relay] Buyer not reached for inquiry {inquiry.inquiry_id}: {delivery.error}")

        return RelayResult(
            inquiry_id=inquiry.inquiry_id,
            vendor_id=vendor.vendor_id,
            responses_saved=len(quote.line_items),
            buyer_delivery=delivery,
        )

    async def _update_vendor_stats(self, vendor: Vendor) -> None:
        response_count = (vendor.response_count or 0) + 1
        patch = {"response_count": response_count, "last_quoted": datetime.now(timezone.utc)}
        if vendor.inquiries_received:
            patch["response_rate"] = round(min(100.0, response_count * 100.0 / vendor.inquiries_received), 2)
        try:
            await self.storage.update_vendor(vendor.vendor_id, patch)
        except StorageError as e:
            # The quote itself is already stored
            logger.error(f"[Relay] Stats update failed for {vendor.vendor_id}: {e}")
