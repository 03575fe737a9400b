"""
Inquiry Matcher — vendor selection and quote-request fan-out.

Matching rule:
- vendor is active and lists the requested material
  ("both" = union of cement and tmt vendors, deduplicated, first seen first)
- city matches case-insensitively as a substring in either direction
- zero matches: retry once with the last comma segment of the city

The inquiry is created with the selected vendor ids fixed as a snapshot, then
every selected vendor with a channel address gets the prompt. Each send is
independent; a failed delivery is logged and the fan-out continues.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional

from cemtem.agent.vendor_response_flow import QUOTE_START
from cemtem.core.config import settings
from cemtem.core.exceptions import StorageError
from cemtem.models.inquiry import Inquiry
from cemtem.models.vendor import Vendor
from cemtem.schemas.conversation import ConversationData
from cemtem.schemas.messaging import Button, Channel, DeliveryResult, Keyboard
from cemtem.services.identifiers import new_inquiry_id
from cemtem.services.location_manager import coarse_city
from cemtem.services.messenger import Messenger
from cemtem.services.quote_format import mask_phone, material_label, requested_items
from cemtem.services.storage import Storage

logger = logging.getLogger(__name__)


@dataclass
class DispatchResult:
    inquiry: Inquiry
    vendors_matched: int
    deliveries: List[DeliveryResult] = field(default_factory=list)

    @property
    def vendors_contacted(self) -> List[str]:
        return list(self.inquiry.vendors_contacted or [])

    @property
    def delivered(self) -> int:
        return sum(1 for d in self.deliveries if d.ok)


def build_vendor_prompt(inquiry: Inquiry) -> str:
    """Quote request sent to a vendor. The labeled lines at the end are what vendors reply with."""
    lines = [
        "🔔 New Rate Request",
        "",
        f"📋 Inquiry ID: {inquiry.inquiry_id}",
        f"🏗️ Material: {material_label(inquiry.material)}",
    ]
    if inquiry.cement_company:
        lines.append(f"🏭 Cement Company: {inquiry.cement_company}")
    if inquiry.tmt_company:
        lines.append(f"🏭 TMT Company: {inquiry.tmt_company}")
    lines += [
        f"📍 Location: {inquiry.city}",
        f"📦 Quantity: {inquiry.quantity or 'Not specified'}",
        f"📞 Buyer: {mask_phone(inquiry.user_phone)}",
    ]

    items = requested_items(inquiry.material, inquiry.cement_types, inquiry.tmt_sizes)
    if items:
        lines += ["", "Rates required for:"]
        current = None
        for material, item in items:
            if material != current:
                lines.append(f"{material_label(material)}:")
                current = material
            lines.append(f"• {item}")

    lines += [
        "",
        "Tap \"Enter Rate Amount\" below, or reply in this format:",
        "",
        "RATE: [Price] per [Unit]",
        "GST: [Percentage]%",
        "DELIVERY: [Charges]",
        f"Inquiry ID: {inquiry.inquiry_id}",
    ]
    return "\n".join(lines)


def rate_keyboard(inquiry_id: str) -> Keyboard:
    return [[Button(label="💰 Enter Rate Amount", data=f"{QUOTE_START}{inquiry_id}")]]


class InquiryMatcher:
    def __init__(self, storage: Storage, messenger: Messenger, max_vendors: Optional[int] = None):
        self.storage = storage
        self.messenger = messenger
        # 0 disables the cap
        self.max_vendors = settings.MAX_VENDORS_PER_INQUIRY if max_vendors is None else max_vendors

    async def _match(self, city: str, material: str) -> List[Vendor]:
        materials = ["cement", "tmt"] if material == "both" else [material]
        seen: Dict[str, Vendor] = {}
        for m in materials:
            for vendor in await self.storage.get_vendors_by_material_and_city(m, city):
                seen.setdefault(vendor.vendor_id, vendor)
        return list(seen.values())

    async def find_vendors(self, city: str, material: str) -> List[Vendor]:
        vendors = await self._match(city, material)
        if vendors:
            return vendors

        coarse = coarse_city(city)
        if coarse and coarse.lower() != (city or "").strip().lower():
            logger.info(f"[Matcher] No vendors for '{city}', retrying with '{coarse}'")
            vendors = await self._match(coarse, material)

        if not vendors:
            logger.warning(f"[Matcher] No vendors for material={material} city={city}")
        return vendors

    def select(self, vendors: List[Vendor]) -> List[Vendor]:
        if self.max_vendors and self.max_vendors > 0:
            return vendors[: self.max_vendors]
        return list(vendors)

    async def dispatch(
        self,
        data: ConversationData,
        platform: Channel,
        buyer_address: str,
        user_name: str,
    ) -> DispatchResult:
        """Create the inquiry for a completed buyer conversation and fan it out."""
        matched = await self.find_vendors(data.city, data.material)
        selected = self.select(matched)

        inquiry = await self.storage.create_inquiry(
            inquiry_id=new_inquiry_id(),
            user_name=user_name,
            user_phone=data.phone,
            buyer_address=str(buyer_address),
            platform=Channel(platform).value,
            city=data.city,
            material=data.material,
            cement_company=data.cement_company,
            cement_types=list(data.cement_types),
            tmt_company=data.tmt_company,
            tmt_sizes=list(data.tmt_sizes),
            quantity=data.quantity,
            vendors_contacted=[v.vendor_id for v in selected],
            response_count=0,
            status="pending",
        )

        result = DispatchResult(inquiry=inquiry, vendors_matched=len(matched))
        if not selected:
            return result

        prompt = build_vendor_prompt(inquiry)
        keyboard = rate_keyboard(inquiry.inquiry_id)
        for vendor in selected:
            if not vendor.telegram_id:
                logger.warning(f"[Matcher] Vendor {vendor.vendor_id} has no channel address, skipped")
                continue

            delivery = await self.messenger.send(
                Channel(vendor.channel or Channel.TELEGRAM.value), vendor.telegram_id, prompt, keyboard
            )
            result.deliveries.append(delivery)
            if not delivery.ok:
                logger.error(f"[Matcher] Inquiry {inquiry.inquiry_id} not delivered to {vendor.vendor_id}: {delivery.error}")
                continue

            try:
                await self.storage.update_vendor(
                    vendor.vendor_id,
                    {
                        "inquiries_received": (vendor.inquiries_received or 0) + 1,
                        "last_contacted": datetime.now(timezone.utc),
                    },
                )
            except StorageError as e:
                logger.error(f"[Matcher] Counter update failed for {vendor.vendor_id}: {e}")

        logger.info(
            f"[Matcher] Inquiry {inquiry.inquiry_id}: matched={len(matched)} "
            f"selected={len(selected)} delivered={result.delivered}"
        )
        return result
