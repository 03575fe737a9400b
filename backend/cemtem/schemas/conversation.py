"""Typed conversation state for the onboarding dialogue."""
from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, Field

from cemtem.schemas.messaging import Channel, Keyboard


class ConversationStep(str, Enum):
    START = "start"
    USER_TYPE = "user_type"

    # Buyer path
    BUYER_MATERIAL = "buyer_material"
    BUYER_CEMENT_COMPANY = "buyer_cement_company_select"
    BUYER_CEMENT_TYPES = "buyer_cement_types"
    BUYER_CEMENT_CUSTOM = "buyer_cement_custom"
    BUYER_TMT_COMPANY = "buyer_tmt_company_select"
    BUYER_TMT_SIZES = "buyer_tmt_sizes"
    BUYER_CITY = "buyer_city"
    BUYER_CITY_SELECT = "buyer_city_select"
    BUYER_LOCALITY_SELECT = "buyer_locality_select"
    BUYER_QUANTITY = "buyer_quantity"
    BUYER_PHONE = "buyer_phone"

    # Vendor path
    VENDOR_COMPANY = "vendor_company"
    VENDOR_PHONE = "vendor_phone"
    VENDOR_CITY = "vendor_city"
    VENDOR_CITY_SELECT = "vendor_city_select"
    VENDOR_LOCALITY_SELECT = "vendor_locality_select"
    VENDOR_MATERIALS = "vendor_materials"

    COMPLETED = "completed"


class FlowAction(str, Enum):
    CREATE_INQUIRY = "create_inquiry"
    REGISTER_VENDOR = "register_vendor"


class ConversationData(BaseModel):
    """
    Fields accumulated while the dialogue advances.

    Steps only ever add or overwrite fields via `model_copy(update=...)`;
    nothing is dropped until /start or completion.
    """
    user_type: Optional[str] = None  # buyer | vendor

    # Buyer
    material: Optional[str] = None  # cement | tmt | both
    cement_company: Optional[str] = None
    cement_types: List[str] = Field(default_factory=list)
    tmt_company: Optional[str] = None
    tmt_sizes: List[str] = Field(default_factory=list)
    quantity: Optional[str] = None

    # Vendor
    company: Optional[str] = None
    materials: List[str] = Field(default_factory=list)

    # Shared
    phone: Optional[str] = None
    city: Optional[str] = None
    city_id: Optional[str] = None
    locality_id: Optional[str] = None
    selected_city_id: Optional[str] = None
    selected_city_name: Optional[str] = None


class ConversationContext(BaseModel):
    """What the flow needs to know about the sender. Owned by the session router."""
    channel: Channel = Channel.TELEGRAM
    chat_id: str
    step: Optional[ConversationStep] = None
    data: ConversationData = Field(default_factory=ConversationData)


class FlowResponse(BaseModel):
    message: str
    next_step: ConversationStep
    data: ConversationData = Field(default_factory=ConversationData)
    action: Optional[FlowAction] = None
    keyboard: Optional[Keyboard] = None
