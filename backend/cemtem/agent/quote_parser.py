"""
Free-text vendor quote parser. NO AI.

Vendors have been trained on this reply format, so it is a wire contract and
must stay stable:

    RATE: 350 per bag
    GST: 18%
    DELIVERY: 50
    Inquiry ID: INQ-1712345678901

Grammar (labels case-insensitive, any order, other lines ignored):

    | Field       | Pattern                                   | Required | Default         |
    |-------------|-------------------------------------------|----------|-----------------|
    | rate        | RATE: [₹]<number> [per|/ <unit>]          | yes      | -               |
    | gst         | GST: <number>[%]                          | no       | 0               |
    | delivery    | DELIVERY: <number> | free | <free text>   | no       | "Not specified" |
    | inquiry id  | Inquiry ID: <PREFIX>-<digits>[-<SUFFIX>]  | yes      | -               |

Unit defaults to "unit". A numeric delivery becomes `delivery`; "free"
becomes 0; anything else is kept verbatim in `delivery_note`.
"""
import re
from typing import List, Optional

from cemtem.schemas.quote import ParsedQuote, QuoteLineItem, VendorQuote

RATE_PATTERN = re.compile(
    r"RATE:\s*(?:(?:₹|rs\.?)\s*)?([0-9]+(?:\.[0-9]+)?)(?:\s*(?:per|/)\s*([A-Za-z]+))?",
    re.IGNORECASE,
)
GST_PATTERN = re.compile(r"GST:\s*([0-9]+(?:\.[0-9]+)?)\s*%?", re.IGNORECASE)
DELIVERY_PATTERN = re.compile(r"DELIVERY:[ \t]*([^\n\r]+)", re.IGNORECASE)
DELIVERY_AMOUNT = re.compile(
    r"(?:₹|rs\.?|inr)?\s*([0-9]+(?:\.[0-9]+)?)\s*(?:/-|rs|rupees)?",
    re.IGNORECASE,
)
INQUIRY_PATTERN = re.compile(r"Inquiry ID:\s*([A-Za-z]{2,5}-[0-9]+(?:-[A-Za-z]+)?)", re.IGNORECASE)

FORMAT_REMINDER = (
    "❌ I couldn't read your quote. Please reply in this format:\n\n"
    "RATE: [Price] per [Unit]\n"
    "GST: [Percentage]%\n"
    "DELIVERY: [Charges]\n"
    "Inquiry ID: [Inquiry ID from the request]\n\n"
    "Example:\n"
    "RATE: 350 per bag\n"
    "GST: 18%\n"
    "DELIVERY: 50\n"
    "Inquiry ID: INQ-123456789"
)


def looks_like_quote(text: str) -> bool:
    """True when the sender is attempting a free-text quote (so it is not dialogue input)."""
    upper = (text or "").upper()
    return "RATE:" in upper or "INQUIRY ID:" in upper


def missing_fields(text: str) -> List[str]:
    missing = []
    if not RATE_PATTERN.search(text or ""):
        missing.append("RATE")
    if not INQUIRY_PATTERN.search(text or ""):
        missing.append("Inquiry ID")
    return missing


def _parse_delivery(raw: Optional[str]) -> tuple:
    if raw is None:
        return None, "Not specified"
    raw = raw.strip().strip("*").strip()
    amount = DELIVERY_AMOUNT.fullmatch(raw)
    if amount:
        return float(amount.group(1)), raw
    if raw.lower() in ("free", "free delivery", "nil", "none"):
        return 0.0, raw
    return None, raw or "Not specified"


def parse_quote(text: str) -> Optional[ParsedQuote]:
    """Extract a quote, or None when RATE or Inquiry ID is missing."""
    text = text or ""
    rate_match = RATE_PATTERN.search(text)
    inquiry_match = INQUIRY_PATTERN.search(text)
    if not rate_match or not inquiry_match:
        return None

    gst_match = GST_PATTERN.search(text)
    delivery_match = DELIVERY_PATTERN.search(text)
    delivery, note = _parse_delivery(delivery_match.group(1) if delivery_match else None)

    return ParsedQuote(
        inquiry_id=inquiry_match.group(1).upper(),
        rate=float(rate_match.group(1)),
        unit=(rate_match.group(2) or "unit").lower(),
        gst=float(gst_match.group(1)) if gst_match else 0.0,
        delivery=delivery,
        delivery_note=note,
    )


def to_vendor_quote(parsed: ParsedQuote, vendor_address: str) -> VendorQuote:
    """Free-text quotes price the inquiry as a whole: one line item, material resolved by the relay."""
    return VendorQuote(
        vendor_address=str(vendor_address),
        inquiry_id=parsed.inquiry_id,
        line_items=[
            QuoteLineItem(
                rate=parsed.rate,
                unit=parsed.unit,
                gst=parsed.gst,
                delivery=parsed.delivery,
                delivery_note=parsed.delivery_note,
            )
        ],
    )
