"""
Guided quote entry for vendors (button driven).

Started when a vendor taps "Enter Rate Amount" under an inquiry. One draft per
vendor channel address:

    rate_entry ⇄ awaiting_rate_input        (once per line item, repeatable)
      → awaiting_gst ⇄ awaiting_gst_input
      → awaiting_delivery ⇄ awaiting_delivery_input
      → completed

A rate of 0 is a real answer ("unavailable"), distinct from an item that was
never entered. Invalid numbers re-prompt the same sub-state and keep every
earlier entry. On completion the draft is dropped and a normalized
VendorQuote is returned for the relay.
"""
import logging
import re
from enum import Enum
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

from cemtem.agent.session_store import SessionStore
from cemtem.core.exceptions import InquiryNotFoundError, SessionExpiredError
from cemtem.schemas.messaging import Button, Keyboard
from cemtem.schemas.quote import QuoteLineItem, VendorQuote
from cemtem.services.identifiers import normalize_inquiry_id
from cemtem.services.quote_format import format_delivery, format_grouped, format_rate, material_label, requested_items
from cemtem.services.storage import Storage

logger = logging.getLogger(__name__)

# Callback tokens: <prefix><inquiry id>[:<argument>]
QUOTE_START = "qstart:"
RATE_ITEM = "qrate:"
RATES_DONE = "qdone:"
GST_CHOICE = "qgst:"
DELIVERY_CHOICE = "qdel:"
QUOTE_CANCEL = "qcancel:"
DRAFT_TOKENS = (RATE_ITEM, RATES_DONE, GST_CHOICE, DELIVERY_CHOICE, QUOTE_CANCEL)

MAX_GST = 30.0
NUMBER = re.compile(r"(?:₹|rs\.?)?\s*([0-9]+(?:\.[0-9]+)?)\s*%?", re.IGNORECASE)


class DraftStep(str, Enum):
    RATE_ENTRY = "rate_entry"
    AWAITING_RATE_INPUT = "awaiting_rate_input"
    AWAITING_GST = "awaiting_gst"
    AWAITING_GST_INPUT = "awaiting_gst_input"
    AWAITING_DELIVERY = "awaiting_delivery"
    AWAITING_DELIVERY_INPUT = "awaiting_delivery_input"
    COMPLETED = "completed"


TEXT_INPUT_STEPS = (
    DraftStep.AWAITING_RATE_INPUT,
    DraftStep.AWAITING_GST_INPUT,
    DraftStep.AWAITING_DELIVERY_INPUT,
)
GST_STEPS = (DraftStep.AWAITING_GST, DraftStep.AWAITING_GST_INPUT)
DELIVERY_STEPS = (DraftStep.AWAITING_DELIVERY, DraftStep.AWAITING_DELIVERY_INPUT)

OUT_OF_STEP = "⚠️ That button is no longer active.\n\n"


class VendorQuoteDraft(BaseModel):
    inquiry_id: str
    material: str
    items: List[Tuple[str, str]]  # (material, item) in display order
    rates: Dict[str, Dict[str, float]] = Field(default_factory=dict)
    gst: Optional[float] = None
    delivery: Optional[float] = None
    current_item: Optional[int] = None
    step: DraftStep = DraftStep.RATE_ENTRY

    def rate_for(self, material: str, item: str) -> Optional[float]:
        return self.rates.get(material, {}).get(item)

    def has_rates(self) -> bool:
        return any(len(entries) > 0 for entries in self.rates.values())


class VendorFlowResponse(BaseModel):
    message: str
    step: DraftStep
    keyboard: Optional[Keyboard] = None
    quote: Optional[VendorQuote] = None  # set only on completion


def parse_number(text: str) -> Optional[float]:
    match = NUMBER.fullmatch((text or "").strip())
    return float(match.group(1)) if match else None


def quote_token(prefix: str, inquiry_id: str, argument: Optional[object] = None) -> str:
    if argument is None:
        return f"{prefix}{inquiry_id}"
    return f"{prefix}{inquiry_id}:{argument}"


class VendorResponseFlow:
    def __init__(self, storage: Storage, drafts: Optional[SessionStore] = None):
        self.storage = storage
        self.drafts: SessionStore[VendorQuoteDraft] = (
            drafts if drafts is not None else SessionStore(name="quote_drafts")
        )

    # ------------------------------------------------------------------
    # Draft access
    # ------------------------------------------------------------------

    def get_draft(self, address: str) -> Optional[VendorQuoteDraft]:
        return self.drafts.get(str(address))

    def _require_draft(self, address: str) -> VendorQuoteDraft:
        draft = self.get_draft(address)
        if draft is None:
            raise SessionExpiredError(f"no quote draft for {address}")
        return draft

    def _save(self, address: str, draft: VendorQuoteDraft) -> None:
        self.drafts.set(str(address), draft)

    def awaits_text(self, address: str) -> bool:
        draft = self.get_draft(address)
        return draft is not None and draft.step in TEXT_INPUT_STEPS

    # ------------------------------------------------------------------
    # Entry
    # ------------------------------------------------------------------

    async def start(self, address: str, inquiry_id: str) -> VendorFlowResponse:
        inquiry = await self.storage.get_inquiry_by_id(normalize_inquiry_id(inquiry_id))
        if not inquiry:
            raise InquiryNotFoundError(inquiry_id)

        items = requested_items(inquiry.material, inquiry.cement_types, inquiry.tmt_sizes)
        if not items:
            # Inquiry without item detail: price the material itself
            materials = ["cement", "tmt"] if inquiry.material == "both" else [inquiry.material]
            items = [(m, material_label(m)) for m in materials]

        draft = VendorQuoteDraft(inquiry_id=inquiry.inquiry_id, material=inquiry.material, items=items)
        self._save(address, draft)
        logger.info(f"[VendorFlow] Draft started: vendor={address} inquiry={inquiry.inquiry_id} items={len(items)}")
        return self._entry_options(draft)

    def _entry_options(self, draft: VendorQuoteDraft, prefix: str = "") -> VendorFlowResponse:
        lines = [f"💰 Please provide rates for inquiry {draft.inquiry_id}:\n"]
        current_material = None
        for i, (material, item) in enumerate(draft.items, 1):
            if material != current_material:
                lines.append(f"{'🏗️' if material == 'cement' else '🔧'} {material_label(material)}:")
                current_material = material
            rate = draft.rate_for(material, item)
            status = format_rate(rate) if rate is not None else "not entered"
            lines.append(f"{i}. {item} - {status}")
        lines.append("\nTap an item to enter its rate, then tap Done.")

        keyboard: Keyboard = [
            [Button(label=f"💰 {item}", data=quote_token(RATE_ITEM, draft.inquiry_id, i))]
            for i, (_, item) in enumerate(draft.items)
        ]
        keyboard.append([Button(label="✅ Done with all rates", data=quote_token(RATES_DONE, draft.inquiry_id))])
        keyboard.append([Button(label="❌ Cancel quote", data=quote_token(QUOTE_CANCEL, draft.inquiry_id))])
        return VendorFlowResponse(message=prefix + "\n".join(lines), step=draft.step, keyboard=keyboard)

    # ------------------------------------------------------------------
    # Rates
    # ------------------------------------------------------------------

    def select_item(self, address: str, index: int) -> VendorFlowResponse:
        draft = self._require_draft(address)
        if not 0 <= index < len(draft.items):
            return self._entry_options(draft, prefix="❌ That item is not part of this inquiry.\n\n")

        draft.current_item = index
        draft.step = DraftStep.AWAITING_RATE_INPUT
        self._save(address, draft)
        _, item = draft.items[index]
        return VendorFlowResponse(
            message=(
                f"💰 Enter rate for {item}:\n"
                "• Type \"250\" for ₹250 per unit\n"
                "• Type \"0\" if this item is unavailable\n"
                "Just type the number:"
            ),
            step=draft.step,
        )

    def _rate_input(self, address: str, draft: VendorQuoteDraft, text: str) -> VendorFlowResponse:
        rate = parse_number(text)
        if rate is None or rate < 0 or draft.current_item is None:
            return VendorFlowResponse(
                message="❌ Please enter a valid number (0 or higher). Example: 250",
                step=draft.step,
            )

        material, item = draft.items[draft.current_item]
        draft.rates.setdefault(material, {})[item] = rate
        draft.current_item = None
        draft.step = DraftStep.RATE_ENTRY
        self._save(address, draft)
        return self._entry_options(draft, prefix=f"✅ {item}: {format_rate(rate)}\n\n")

    def complete_rates(self, address: str) -> VendorFlowResponse:
        draft = self._require_draft(address)
        if not draft.has_rates():
            return self._back_to_entry(address, draft)

        draft.step = DraftStep.AWAITING_GST
        self._save(address, draft)
        return self._gst_prompt(draft)

    def _back_to_entry(self, address: str, draft: VendorQuoteDraft) -> VendorFlowResponse:
        draft.step = DraftStep.RATE_ENTRY
        draft.current_item = None
        self._save(address, draft)
        return self._entry_options(draft, prefix="❌ Please enter at least one rate before completing.\n\n")

    # ------------------------------------------------------------------
    # GST
    # ------------------------------------------------------------------

    def _gst_prompt(self, draft: VendorQuoteDraft, prefix: str = "") -> VendorFlowResponse:
        def choice(label: str, value: str) -> Button:
            return Button(label=label, data=quote_token(GST_CHOICE, draft.inquiry_id, value))

        return VendorFlowResponse(
            message=f"{prefix}📋 Rate Summary:\n{self._rate_lines(draft)}\n\nWhat's your GST percentage?",
            step=draft.step,
            keyboard=[
                [choice("12% GST", "12"), choice("18% GST", "18")],
                [choice("5% GST", "5"), choice("28% GST", "28")],
                [choice("📝 Enter Custom GST%", "custom")],
            ],
        )

    def select_gst(self, address: str, choice: str) -> VendorFlowResponse:
        draft = self._require_draft(address)
        if draft.step not in GST_STEPS:
            return self._current_prompt(draft, prefix=OUT_OF_STEP)
        if choice == "custom":
            draft.step = DraftStep.AWAITING_GST_INPUT
            self._save(address, draft)
            return VendorFlowResponse(
                message="📊 Please enter GST percentage:\n\nExample: 18\n(Just type the number, I'll add %)",
                step=draft.step,
            )
        return self._gst_input(address, draft, choice)

    def _gst_input(self, address: str, draft: VendorQuoteDraft, text: str) -> VendorFlowResponse:
        gst = parse_number(text)
        if gst is None or not 0 <= gst <= MAX_GST:
            draft.step = DraftStep.AWAITING_GST_INPUT
            self._save(address, draft)
            return VendorFlowResponse(
                message=f"❌ Please enter a valid GST percentage (0-{int(MAX_GST)}). Example: 18",
                step=draft.step,
            )

        draft.gst = gst
        draft.step = DraftStep.AWAITING_DELIVERY
        self._save(address, draft)
        return self._delivery_prompt(draft, prefix=f"✅ GST set: {gst:g}%\n\n")

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    def _delivery_prompt(self, draft: VendorQuoteDraft, prefix: str = "") -> VendorFlowResponse:
        return VendorFlowResponse(
            message=f"{prefix}What's your delivery charge?",
            step=draft.step,
            keyboard=[
                [Button(label="🆓 Free Delivery", data=quote_token(DELIVERY_CHOICE, draft.inquiry_id, 0))],
                [Button(label="🚚 Enter Delivery Amount", data=quote_token(DELIVERY_CHOICE, draft.inquiry_id, "custom"))],
            ],
        )

    def select_delivery(self, address: str, choice: str) -> VendorFlowResponse:
        draft = self._require_draft(address)
        if draft.step not in DELIVERY_STEPS:
            return self._current_prompt(draft, prefix=OUT_OF_STEP)
        if choice == "custom":
            draft.step = DraftStep.AWAITING_DELIVERY_INPUT
            self._save(address, draft)
            return VendorFlowResponse(
                message="🚚 Please enter delivery charge:\n\nExample: 400\n(Just type the number, or 0 for free delivery)",
                step=draft.step,
            )
        return self._delivery_input(address, draft, choice)

    def _delivery_input(self, address: str, draft: VendorQuoteDraft, text: str) -> VendorFlowResponse:
        delivery = parse_number(text)
        if delivery is None or delivery < 0:
            draft.step = DraftStep.AWAITING_DELIVERY_INPUT
            self._save(address, draft)
            return VendorFlowResponse(
                message="❌ Please enter a valid delivery charge (0 or higher). Example: 400",
                step=draft.step,
            )

        draft.delivery = delivery
        return self._complete(address, draft)

    def _current_prompt(self, draft: VendorQuoteDraft, prefix: str = "") -> VendorFlowResponse:
        """Re-show whatever the draft is waiting for."""
        if draft.step in GST_STEPS:
            return self._gst_prompt(draft, prefix)
        if draft.step in DELIVERY_STEPS:
            return self._delivery_prompt(draft, prefix)
        return self._entry_options(draft, prefix)

    # ------------------------------------------------------------------
    # Completion / cancel
    # ------------------------------------------------------------------

    def _rate_lines(self, draft: VendorQuoteDraft) -> str:
        return format_grouped(
            (material, item, draft.rate_for(material, item), "unit")
            for material, item in draft.items
            if draft.rate_for(material, item) is not None
        )

    def _complete(self, address: str, draft: VendorQuoteDraft) -> VendorFlowResponse:
        if not draft.has_rates():
            return self._back_to_entry(address, draft)

        self.drafts.delete(str(address))
        draft.step = DraftStep.COMPLETED

        line_items = [
            QuoteLineItem(
                material=material,
                item=item,
                rate=draft.rate_for(material, item),
                gst=draft.gst or 0.0,
                delivery=draft.delivery,
            )
            for material, item in draft.items
            if draft.rate_for(material, item) is not None
        ]
        quote = VendorQuote(vendor_address=str(address), inquiry_id=draft.inquiry_id, line_items=line_items)

        message = (
            "✅ Quote submitted successfully!\n\n"
            "📋 Your Complete Quote:\n"
            f"{self._rate_lines(draft)}\n\n"
            f"📊 GST: {(draft.gst or 0):g}%\n"
            f"🚚 Delivery: {format_delivery(draft.delivery)}\n\n"
            f"Inquiry ID: {draft.inquiry_id}\n\n"
            "Your detailed quote has been sent to the buyer!"
        )
        logger.info(f"[VendorFlow] Draft completed: vendor={address} inquiry={draft.inquiry_id} lines={len(line_items)}")
        return VendorFlowResponse(message=message, step=DraftStep.COMPLETED, quote=quote)

    def cancel(self, address: str) -> VendorFlowResponse:
        self.drafts.delete(str(address))
        return VendorFlowResponse(
            message="🗑️ Quote cancelled. Tap \"Enter Rate Amount\" on the inquiry to start again.",
            step=DraftStep.COMPLETED,
        )

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def process_text(self, address: str, text: str) -> Optional[VendorFlowResponse]:
        """Handle typed input. None when no draft is waiting for text."""
        draft = self.get_draft(address)
        if draft is None or draft.step not in TEXT_INPUT_STEPS:
            return None
        if draft.step == DraftStep.AWAITING_RATE_INPUT:
            return self._rate_input(address, draft, text)
        if draft.step == DraftStep.AWAITING_GST_INPUT:
            return self._gst_input(address, draft, text)
        return self._delivery_input(address, draft, text)

    @staticmethod
    def owns_token(token: str) -> bool:
        return token.startswith((QUOTE_START,) + DRAFT_TOKENS)

    async def handle_button(self, address: str, token: str) -> VendorFlowResponse:
        if token.startswith(QUOTE_START):
            return await self.start(address, token[len(QUOTE_START):])

        prefix = next((p for p in DRAFT_TOKENS if token.startswith(p)), None)
        if prefix is None:
            raise ValueError(f"not a quote flow token: {token}")

        inquiry_id, _, argument = token[len(prefix):].partition(":")
        draft = self._require_draft(address)
        if normalize_inquiry_id(inquiry_id) != draft.inquiry_id:
            # Button left over from another inquiry's messages
            logger.info(f"[VendorFlow] Ignored {prefix} for {inquiry_id}: vendor={address} is quoting {draft.inquiry_id}")
            return self._current_prompt(
                draft,
                prefix=f"⚠️ That button belongs to inquiry {inquiry_id}. You are quoting {draft.inquiry_id}.\n\n",
            )

        if prefix == RATE_ITEM:
            return self.select_item(address, int(argument) if argument.isdigit() else -1)
        if prefix == RATES_DONE:
            return self.complete_rates(address)
        if prefix == GST_CHOICE:
            return self.select_gst(address, argument)
        if prefix == DELIVERY_CHOICE:
            return self.select_delivery(address, argument)
        return self.cancel(address)
