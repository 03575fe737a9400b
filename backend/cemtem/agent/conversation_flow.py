"""
Buyer / vendor onboarding dialogue as a pure reducer.

    process_message(context, raw_input) -> FlowResponse(message, next_step, data, action?)

The flow never touches Storage or Messenger. When a dialogue finishes it
returns `action` (create_inquiry / register_vendor) exactly once, carrying the
accumulated data, and the session router executes it.

Buyer path:
    start → user_type → buyer_material → cement company/types (+custom)
          → tmt company/sizes → city (+locality) → quantity → phone → completed
Vendor path:
    start → user_type → vendor_company → vendor_phone → city (+locality)
          → vendor_materials → completed

Channel differences only affect location capture:
- web clients post a pre-validated "cityId:localityId" pair (or free text)
- telegram clients pick a city, then a locality, from inline buttons
"""
import logging
import re
from typing import Callable, Dict, List, Optional

from cemtem.schemas.conversation import (
    ConversationContext,
    ConversationData,
    ConversationStep,
    FlowAction,
    FlowResponse,
)
from cemtem.schemas.messaging import Button, Channel, Keyboard
from cemtem.services import location_manager
from cemtem.services.quote_format import material_label

logger = logging.getLogger(__name__)

Step = ConversationStep

# ==============================================================================
# CATALOGS
# ==============================================================================

OTHER_CEMENT_TYPE = "Enter Other Specific Type"

CEMENT_TYPES = [
    "OPC Grade 33",
    "OPC Grade 43",
    "OPC Grade 53",
    "PPC Grade 33",
    "PPC Grade 43",
    "PPC Grade 53",
    OTHER_CEMENT_TYPE,
]

TMT_SIZES = ["5.5mm", "6mm", "8mm", "10mm", "12mm", "16mm", "18mm", "20mm", "24mm", "26mm", "28mm", "32mm", "36mm", "40mm"]

CEMENT_COMPANIES = ["ACC", "UltraTech", "Ambuja", "Shree Cement", "JK Cement", "Dalmia", "Any Company"]

TMT_COMPANIES = ["TATA Tiscon", "SAIL", "JSW", "Jindal", "Shyam Steel", "Any Company"]

WELCOME_MESSAGE = (
    "🏗️ Welcome to CemTemBot!\n\n"
    "I help you get instant pricing for cement and TMT bars from verified vendors in your city.\n\n"
    "Reply with the number of an option:\n"
    "1 Buy Materials\n"
    "2 Register As A Vendor"
)

QUOTE_FORMAT_EXAMPLE = (
    "RATE: 350 per bag\n"
    "GST: 18%\n"
    "DELIVERY: 50\n"
    "Inquiry ID: INQ-123456789"
)

PHONE_DIGITS = re.compile(r"\D")


# ==============================================================================
# INPUT HELPERS
# ==============================================================================

def _numbered(options: List[str]) -> str:
    return "\n".join(f"{i}. {option}" for i, option in enumerate(options, 1))


def _number_keyboard(options: List[str]) -> Keyboard:
    return [[Button(label=option, data=str(i))] for i, option in enumerate(options, 1)]


def parse_single_choice(text: str, options: List[str]) -> Optional[str]:
    """1-based index or the option name itself (case-insensitive)."""
    text = (text or "").strip()
    if text.isdigit():
        index = int(text) - 1
        return options[index] if 0 <= index < len(options) else None
    return next((o for o in options if o.lower() == text.lower()), None)


def parse_multi_choice(text: str, options: List[str]) -> List[str]:
    """Comma-separated 1-based indices. Out-of-range or non-numeric entries are dropped."""
    selected: List[str] = []
    for token in (text or "").split(","):
        token = token.strip()
        if not token.isdigit():
            continue
        index = int(token) - 1
        if 0 <= index < len(options) and options[index] not in selected:
            selected.append(options[index])
    return selected


def normalize_phone(text: str) -> Optional[str]:
    digits = PHONE_DIGITS.sub("", text or "")
    if 10 <= len(digits) <= 13:
        return text.strip()
    return None


def materials_summary(data: ConversationData) -> str:
    lines = []
    if data.material in ("cement", "both"):
        lines.append(f"Cement ({data.cement_company}): {', '.join(data.cement_types)}")
    if data.material in ("tmt", "both"):
        lines.append(f"TMT ({data.tmt_company}): {', '.join(data.tmt_sizes)}")
    return "\n".join(lines)


# ==============================================================================
# FLOW
# ==============================================================================

class ConversationFlow:
    """Stateless; one instance is shared by every session."""

    def __init__(self):
        self._handlers: Dict[Step, Callable[[ConversationContext, str], FlowResponse]] = {
            Step.USER_TYPE: self._user_type,
            Step.BUYER_MATERIAL: self._buyer_material,
            Step.BUYER_CEMENT_COMPANY: self._cement_company,
            Step.BUYER_CEMENT_TYPES: self._cement_types,
            Step.BUYER_CEMENT_CUSTOM: self._cement_custom,
            Step.BUYER_TMT_COMPANY: self._tmt_company,
            Step.BUYER_TMT_SIZES: self._tmt_sizes,
            Step.BUYER_CITY: self._city_text,
            Step.BUYER_CITY_SELECT: self._city_select,
            Step.BUYER_LOCALITY_SELECT: self._locality_select,
            Step.BUYER_QUANTITY: self._buyer_quantity,
            Step.BUYER_PHONE: self._buyer_phone,
            Step.VENDOR_COMPANY: self._vendor_company,
            Step.VENDOR_PHONE: self._vendor_phone,
            Step.VENDOR_CITY: self._city_text,
            Step.VENDOR_CITY_SELECT: self._city_select,
            Step.VENDOR_LOCALITY_SELECT: self._locality_select,
            Step.VENDOR_MATERIALS: self._vendor_materials,
            Step.COMPLETED: self._completed,
        }

    def process_message(self, context: ConversationContext, raw_input: str) -> FlowResponse:
        text = (raw_input or "").strip()

        # /start always wins and discards everything collected so far
        if text == "/start" or context.step is None or context.step == Step.START:
            return self.start()

        handler = self._handlers.get(context.step)
        if handler is None:
            logger.warning(f"[Flow] Unknown step {context.step!r} for chat {context.chat_id}")
            return FlowResponse(
                message="I didn't understand that. Type /start to begin again.",
                next_step=Step.USER_TYPE,
            )
        return handler(context, text)

    def start(self) -> FlowResponse:
        return FlowResponse(
            message=WELCOME_MESSAGE,
            next_step=Step.USER_TYPE,
            data=ConversationData(),
            keyboard=_number_keyboard(["Buy Materials", "Register As A Vendor"]),
        )

    @staticmethod
    def _stay(context: ConversationContext, message: str, keyboard: Optional[Keyboard] = None) -> FlowResponse:
        """Re-prompt on the same step without losing anything."""
        return FlowResponse(message=message, next_step=context.step, data=context.data, keyboard=keyboard)

    # --------------------------------------------------------------------------
    # User type
    # --------------------------------------------------------------------------

    def _user_type(self, context: ConversationContext, text: str) -> FlowResponse:
        choice = text.lower()
        if choice in ("1", "buyer", "buy materials"):
            return FlowResponse(
                message=(
                    "🏗️ Great! I'll help you get pricing for cement and TMT bars.\n\n"
                    "What material do you need pricing for?\n"
                    "1 Cement\n2 TMT Bars\n3 Both Cement & TMT Bars\n\n"
                    "Reply with 1, 2 or 3"
                ),
                next_step=Step.BUYER_MATERIAL,
                data=context.data.model_copy(update={"user_type": "buyer"}),
                keyboard=_number_keyboard(["Cement", "TMT Bars", "Both Cement & TMT Bars"]),
            )
        if choice in ("2", "vendor", "register as a vendor"):
            return FlowResponse(
                message="🏢 Welcome vendor! Let's get you registered to provide quotes.\n\nWhat's your company name?",
                next_step=Step.VENDOR_COMPANY,
                data=context.data.model_copy(update={"user_type": "vendor"}),
            )
        return self._stay(context, "Please reply with 1 to buy materials or 2 to register as a vendor.")

    # --------------------------------------------------------------------------
    # Buyer: material, company and item selection
    # --------------------------------------------------------------------------

    def _buyer_material(self, context: ConversationContext, text: str) -> FlowResponse:
        material = {"1": "cement", "2": "tmt", "3": "both"}.get(text)
        if not material:
            return self._stay(context, "Please reply with 1 for Cement, 2 for TMT Bars or 3 for both.")

        data = context.data.model_copy(update={"material": material})
        if material == "tmt":
            return self._ask_tmt_company(data)
        intro = "🏭 Let's start with cement. " if material == "both" else "🏭 "
        return FlowResponse(
            message=f"{intro}Select cement company preference (reply with number):\n\n{_numbered(CEMENT_COMPANIES)}",
            next_step=Step.BUYER_CEMENT_COMPANY,
            data=data,
            keyboard=_number_keyboard(CEMENT_COMPANIES),
        )

    def _cement_company(self, context: ConversationContext, text: str) -> FlowResponse:
        company = parse_single_choice(text, CEMENT_COMPANIES)
        if not company:
            return self._stay(context, f"Please select a valid number (1-{len(CEMENT_COMPANIES)})")
        return FlowResponse(
            message=(
                "🏗️ Select cement types you need (reply with numbers separated by commas, e.g. \"1,3,5\").\n"
                "Choose Grade 33 for repairs/small fixings and Grade 43 for general house-building:\n\n"
                f"{_numbered(CEMENT_TYPES)}"
            ),
            next_step=Step.BUYER_CEMENT_TYPES,
            data=context.data.model_copy(update={"cement_company": company}),
        )

    def _cement_types(self, context: ConversationContext, text: str) -> FlowResponse:
        selected = parse_multi_choice(text, CEMENT_TYPES)
        if not selected:
            return self._stay(context, "Please select valid cement types using numbers (e.g. \"1,3,5\")")

        if OTHER_CEMENT_TYPE in selected:
            return FlowResponse(
                message="Please specify your custom cement type:",
                next_step=Step.BUYER_CEMENT_CUSTOM,
                data=context.data.model_copy(
                    update={"cement_types": [t for t in selected if t != OTHER_CEMENT_TYPE]}
                ),
            )
        return self._after_cement(context, context.data.model_copy(update={"cement_types": selected}))

    def _cement_custom(self, context: ConversationContext, text: str) -> FlowResponse:
        if not text:
            return self._stay(context, "Please type the cement type you need:")
        types = list(context.data.cement_types) + [text]
        return self._after_cement(context, context.data.model_copy(update={"cement_types": types}))

    def _after_cement(self, context: ConversationContext, data: ConversationData) -> FlowResponse:
        header = f"✅ Cement company: {data.cement_company}\n✅ Cement types: {', '.join(data.cement_types)}\n\n"
        if data.material == "both":
            return self._ask_tmt_company(data, header=header + "🏗️ Now for TMT bars. ")
        return self._ask_location(context, data, role="buyer", header=header)

    def _ask_tmt_company(self, data: ConversationData, header: str = "🏗️ ") -> FlowResponse:
        return FlowResponse(
            message=f"{header}Select TMT company preference (reply with number):\n\n{_numbered(TMT_COMPANIES)}",
            next_step=Step.BUYER_TMT_COMPANY,
            data=data,
            keyboard=_number_keyboard(TMT_COMPANIES),
        )

    def _tmt_company(self, context: ConversationContext, text: str) -> FlowResponse:
        company = parse_single_choice(text, TMT_COMPANIES)
        if not company:
            return self._stay(context, f"Please select a valid number (1-{len(TMT_COMPANIES)})")
        return FlowResponse(
            message=(
                "🔧 Select TMT sizes you need (reply with numbers separated by commas, e.g. \"3,5,7\"):\n\n"
                f"{_numbered(TMT_SIZES)}"
            ),
            next_step=Step.BUYER_TMT_SIZES,
            data=context.data.model_copy(update={"tmt_company": company}),
        )

    def _tmt_sizes(self, context: ConversationContext, text: str) -> FlowResponse:
        selected = parse_multi_choice(text, TMT_SIZES)
        if not selected:
            return self._stay(context, "Please select valid TMT sizes using numbers (e.g. \"3,5,7\")")
        data = context.data.model_copy(update={"tmt_sizes": selected})
        header = f"✅ TMT company: {data.tmt_company}\n✅ TMT sizes: {', '.join(selected)}\n\n"
        return self._ask_location(context, data, role="buyer", header=header)

    # --------------------------------------------------------------------------
    # Location capture (shared by buyer and vendor)
    # --------------------------------------------------------------------------

    _LOCATION_STEPS = {
        "buyer": (Step.BUYER_CITY, Step.BUYER_CITY_SELECT, Step.BUYER_LOCALITY_SELECT, "bcity_", "bloc_"),
        "vendor": (Step.VENDOR_CITY, Step.VENDOR_CITY_SELECT, Step.VENDOR_LOCALITY_SELECT, "vcity_", "vloc_"),
    }

    @staticmethod
    def _role_for(step: Step) -> str:
        return "vendor" if step.value.startswith("vendor_") else "buyer"

    def _city_keyboard(self, role: str) -> Keyboard:
        prefix = self._LOCATION_STEPS[role][3]
        return [[Button(label=c.name, data=f"{prefix}{c.id}")] for c in location_manager.get_cities()]

    def _ask_location(self, context: ConversationContext, data: ConversationData, role: str, header: str = "") -> FlowResponse:
        text_step, select_step, _, _, _ = self._LOCATION_STEPS[role]
        where = "you need these materials in" if role == "buyer" else "you operate in"
        if context.channel == Channel.WEB:
            return FlowResponse(
                message=f"{header}📍 Which city/location {where}?\n\nPlease select your city and locality:",
                next_step=text_step,
                data=data,
            )
        return FlowResponse(
            message=f"{header}📍 Select which city {where}:",
            next_step=select_step,
            data=data,
            keyboard=self._city_keyboard(role),
        )

    def _city_text(self, context: ConversationContext, text: str) -> FlowResponse:
        """Web clients: "cityId:localityId" from the location picker, or a typed city."""
        role = self._role_for(context.step)
        pair = location_manager.parse_location_pair(text)
        if pair:
            city, city_id, locality_id = pair
            update = {"city": city, "city_id": city_id, "locality_id": locality_id}
        elif text and ":" not in text:
            update = {"city": location_manager.title_case(text)}
        else:
            return self._stay(context, "Please select a valid city and locality.")
        return self._after_location(context.data.model_copy(update=update), role)

    def _city_select(self, context: ConversationContext, text: str) -> FlowResponse:
        role = self._role_for(context.step)
        _, _, locality_step, city_prefix, locality_prefix = self._LOCATION_STEPS[role]
        cities = location_manager.get_cities()

        if text.startswith(city_prefix):
            city = location_manager.get_city(text[len(city_prefix):])
        else:
            name = parse_single_choice(text, [c.name for c in cities])
            city = location_manager.find_city_by_name(name) if name else None

        if not city:
            return self._stay(context, "Please select a valid city option", keyboard=self._city_keyboard(role))

        return FlowResponse(
            message="🏘️ Select which locality:",
            next_step=locality_step,
            data=context.data.model_copy(update={"selected_city_id": city.id, "selected_city_name": city.name}),
            keyboard=[[Button(label=loc.name, data=f"{locality_prefix}{loc.id}")] for loc in city.localities],
        )

    def _locality_select(self, context: ConversationContext, text: str) -> FlowResponse:
        role = self._role_for(context.step)
        _, select_step, _, _, locality_prefix = self._LOCATION_STEPS[role]
        city = location_manager.get_city(context.data.selected_city_id or "")
        if not city:
            return FlowResponse(
                message="Please select your city again:",
                next_step=select_step,
                data=context.data,
                keyboard=self._city_keyboard(role),
            )

        if text.startswith(locality_prefix):
            locality = location_manager.get_locality(city, text[len(locality_prefix):])
        else:
            name = parse_single_choice(text, [loc.name for loc in city.localities])
            locality = next((loc for loc in city.localities if loc.name == name), None)

        if not locality:
            return self._stay(
                context,
                "Please select a valid locality option",
                keyboard=[[Button(label=loc.name, data=f"{locality_prefix}{loc.id}")] for loc in city.localities],
            )

        data = context.data.model_copy(update={
            "city": f"{locality.name}, {city.name}",
            "city_id": city.id,
            "locality_id": locality.id,
        })
        return self._after_location(data, role)

    def _after_location(self, data: ConversationData, role: str) -> FlowResponse:
        if role == "vendor":
            return FlowResponse(
                message=f"📍 Location: {data.city}\n\n🏗️ What materials do you deal with?\n1 Cement only\n2 TMT Bars only\n3 Both Cement & TMT",
                next_step=Step.VENDOR_MATERIALS,
                data=data,
                keyboard=[
                    [Button(label="Cement only", data="vmat_cement")],
                    [Button(label="TMT Bars only", data="vmat_tmt")],
                    [Button(label="Both Cement & TMT", data="vmat_both")],
                ],
            )
        return FlowResponse(
            message=(
                "📦 How much do you need?\n"
                f"Materials requested:\n{materials_summary(data)}\n"
                f"📍 Location: {data.city}\n\n"
                "Please specify quantity (e.g. \"50 bags cement\" and/or \"200 pieces TMT\"):"
            ),
            next_step=Step.BUYER_QUANTITY,
            data=data,
        )

    # --------------------------------------------------------------------------
    # Buyer: quantity and contact
    # --------------------------------------------------------------------------

    def _buyer_quantity(self, context: ConversationContext, text: str) -> FlowResponse:
        if not text:
            return self._stay(context, "Please specify the quantity you need (e.g. \"50 bags\"):")
        return FlowResponse(
            message="📱 Great! Please provide your phone number for vendors to contact you:",
            next_step=Step.BUYER_PHONE,
            data=context.data.model_copy(update={"quantity": text}),
        )

    def _buyer_phone(self, context: ConversationContext, text: str) -> FlowResponse:
        phone = normalize_phone(text)
        if not phone:
            return self._stay(context, "Please enter a valid phone number (10 digits, e.g. 9876543210):")

        data = context.data.model_copy(update={"phone": phone})
        details = []
        if data.material in ("cement", "both"):
            details.append(f"🏗️ Cement Types: {', '.join(data.cement_types)}\n🏭 Cement Company: {data.cement_company}")
        if data.material in ("tmt", "both"):
            details.append(f"🔧 TMT Sizes: {', '.join(data.tmt_sizes)}\n🏭 TMT Company: {data.tmt_company}")

        return FlowResponse(
            message=(
                f"✅ Perfect! Your inquiry has been created and sent to vendors in {data.city}.\n\n"
                "📋 Your Inquiry Summary:\n"
                f"{chr(10).join(details)}\n"
                f"📍 City: {data.city}\n"
                f"📦 Quantity: {data.quantity}\n"
                f"📱 Contact: {phone}\n\n"
                "Vendors will send you detailed quotes shortly!"
            ),
            next_step=Step.COMPLETED,
            data=data,
            action=FlowAction.CREATE_INQUIRY,
        )

    # --------------------------------------------------------------------------
    # Vendor registration
    # --------------------------------------------------------------------------

    def _vendor_company(self, context: ConversationContext, text: str) -> FlowResponse:
        if not text:
            return self._stay(context, "What's your company name?")
        return FlowResponse(
            message="📱 What's your phone number?",
            next_step=Step.VENDOR_PHONE,
            data=context.data.model_copy(update={"company": text}),
        )

    def _vendor_phone(self, context: ConversationContext, text: str) -> FlowResponse:
        phone = normalize_phone(text)
        if not phone:
            return self._stay(context, "Please enter a valid phone number (10 digits, e.g. 9876543210):")
        return self._ask_location(context, context.data.model_copy(update={"phone": phone}), role="vendor")

    def _vendor_materials(self, context: ConversationContext, text: str) -> FlowResponse:
        materials = {
            "vmat_cement": ["cement"], "1": ["cement"],
            "vmat_tmt": ["tmt"], "2": ["tmt"],
            "vmat_both": ["cement", "tmt"], "3": ["cement", "tmt"],
        }.get(text)
        if not materials:
            return self._stay(context, "Please select a valid material option (1, 2 or 3)")

        data = context.data.model_copy(update={"materials": materials})
        display = material_label("both" if len(materials) == 2 else materials[0])
        return FlowResponse(
            message=(
                "✅ Excellent! Your vendor registration is complete.\n\n"
                "📋 Registration Summary:\n"
                f"🏢 Company: {data.company}\n"
                f"📱 Phone: {data.phone}\n"
                f"📍 Location: {data.city}\n"
                f"🏗️ Materials: {display}\n\n"
                "You'll now receive inquiry notifications. Tap \"Enter Rate Amount\" on an inquiry, "
                "or reply with your quote in this format:\n\n"
                f"{QUOTE_FORMAT_EXAMPLE}"
            ),
            next_step=Step.COMPLETED,
            data=data,
            action=FlowAction.REGISTER_VENDOR,
        )

    def _completed(self, context: ConversationContext, text: str) -> FlowResponse:
        return self._stay(context, "✅ This request is complete. Send /start to begin a new one.")


conversation_flow = ConversationFlow()
