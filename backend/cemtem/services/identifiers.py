"""Human-traceable, timestamp-derived identifiers (INQ-<ms>, VEN-<ms>)."""
import re
import threading
import time

_lock = threading.Lock()
_last_ms = 0


def _next_millis() -> int:
    # Two ids in the same millisecond must still differ
    global _last_ms
    with _lock:
        now = int(time.time() * 1000)
        _last_ms = now if now > _last_ms else _last_ms + 1
        return _last_ms


def new_inquiry_id() -> str:
    return f"INQ-{_next_millis()}"


def new_vendor_id() -> str:
    return f"VEN-{_next_millis()}"


def normalize_inquiry_id(inquiry_id: str) -> str:
    """Some prompts suffix the id per material (INQ-1-CEMENT); the record has the bare id."""
    return re.sub(r"-(CEMENT|TMT)$", "", (inquiry_id or "").strip().upper())
