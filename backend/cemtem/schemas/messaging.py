from enum import Enum
from typing import List, Optional
from pydantic import BaseModel


class Channel(str, Enum):
    """Transport a participant is reached through."""
    TELEGRAM = "telegram"
    WEB = "web"


class Button(BaseModel):
    """One quick-reply button: what the user sees and the token we get back."""
    label: str
    data: str


# Rows of buttons, rendered as an inline keyboard on Telegram
Keyboard = List[List[Button]]


class DeliveryResult(BaseModel):
    channel: Channel
    address: str
    ok: bool
    error: Optional[str] = None
