"""Rendering helpers shared by the vendor confirmation and the buyer relay.

Both sides must word a line item identically, so the wording lives here once.
"""
from typing import Dict, Iterable, List, Optional, Tuple

MATERIAL_LABELS = {
    "cement": "Cement",
    "tmt": "TMT Bars",
    "both": "Cement & TMT Bars",
}


def format_amount(value: float) -> str:
    value = float(value)
    if value.is_integer():
        return str(int(value))
    return f"{value:.2f}".rstrip("0").rstrip(".")


def format_rate(rate: float, unit: str = "unit") -> str:
    """0 means the vendor cannot supply this item."""
    if float(rate) == 0:
        return "Unavailable"
    return f"₹{format_amount(rate)} per {unit or 'unit'}"


def format_line(item: str, rate: float, unit: str = "unit") -> str:
    return f"• {item}: {format_rate(rate, unit)}"


def format_delivery(delivery: Optional[float], note: Optional[str] = None) -> str:
    if delivery is None:
        return note or "Not specified"
    if float(delivery) == 0:
        return "Free"
    return f"₹{format_amount(delivery)}"


def material_label(material: Optional[str]) -> str:
    return MATERIAL_LABELS.get((material or "").lower(), (material or "").upper())


def requested_items(
    material: str,
    cement_types: Optional[Iterable[str]],
    tmt_sizes: Optional[Iterable[str]],
) -> List[Tuple[str, str]]:
    """(material, item) pairs an inquiry asks prices for, in display order."""
    items: List[Tuple[str, str]] = []
    if material in ("cement", "both"):
        items.extend(("cement", t) for t in (cement_types or []))
    if material in ("tmt", "both"):
        items.extend(("tmt", s) for s in (tmt_sizes or []))
    return items


def mask_phone(phone: Optional[str]) -> str:
    """Keep the first two and last two digits: 9876543210 → 98******10."""
    digits = "".join(ch for ch in (phone or "") if ch.isdigit())
    if len(digits) < 5:
        return "Not shared"
    return digits[:2] + "*" * (len(digits) - 4) + digits[-2:]


def format_grouped(rows: Iterable[Tuple[str, str, float, str]]) -> str:
    """Render (material, item, rate, unit) rows under one header per material, first-seen order."""
    groups: Dict[str, List[str]] = {}
    for material, item, rate, unit in rows:
        groups.setdefault(material, []).append(format_line(item, rate, unit))
    return "\n\n".join(
        f"{material_label(material).upper()}:\n" + "\n".join(lines)
        for material, lines in groups.items()
    )
