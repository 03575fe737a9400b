from pydantic import BaseModel
from typing import List, Optional
from datetime import datetime
from decimal import Decimal


class VendorRecord(BaseModel):
    vendor_id: str
    name: str
    phone: str
    city: str
    materials: List[str]
    is_active: bool
    response_count: int
    inquiries_received: int
    response_rate: Decimal
    last_quoted: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class PriceResponseRecord(BaseModel):
    vendor_id: str
    inquiry_id: str
    material: str
    price: Decimal
    unit: str
    gst: Decimal
    delivery_charge: Optional[Decimal] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class InquiryRecord(BaseModel):
    inquiry_id: str
    user_name: str
    platform: str
    city: str
    material: str
    cement_company: Optional[str] = None
    cement_types: Optional[List[str]] = None
    tmt_company: Optional[str] = None
    tmt_sizes: Optional[List[str]] = None
    quantity: Optional[str] = None
    vendors_contacted: List[str]
    response_count: int
    status: str
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class InquiryDetail(InquiryRecord):
    responses: List[PriceResponseRecord] = []


class ChatSessionCreated(BaseModel):
    session_id: str
    message: str = "Chat session created successfully"
