from typing import List, Optional
from pydantic import BaseModel, Field


class ParsedQuote(BaseModel):
    """Fields pulled out of a free-text vendor reply."""
    inquiry_id: str
    rate: float
    unit: str = "unit"
    gst: float = 0.0
    delivery: Optional[float] = None  # None when absent or not numeric
    delivery_note: str = "Not specified"


class QuoteLineItem(BaseModel):
    """
    One priced line. material/item are None for free-text quotes, which price
    the inquiry as a whole.
    """
    material: Optional[str] = None  # cement | tmt
    item: Optional[str] = None  # e.g. "OPC Grade 43", "12mm"
    rate: float  # 0 = unavailable
    unit: str = "unit"
    gst: float = 0.0
    delivery: Optional[float] = None
    delivery_note: Optional[str] = None


class VendorQuote(BaseModel):
    """Normalized quote handed to the relay, whichever path produced it."""
    vendor_address: str  # vendor channel address (telegram chat id)
    inquiry_id: str
    line_items: List[QuoteLineItem] = Field(default_factory=list)
